"""
PHP Declaration and Usage Parser

Converts a token stream from the lexer into a ParsedFile: the declared
classes/interfaces/traits with their methods and properties, plus every
class reference, statically typed method call and type hint in the file.

This is not a full PHP grammar. It walks the token stream once, keeping a
stack of brace frames (namespace, class body, function body, plain block)
so that each token is interpreted in its syntactic context. Receiver types
are only tracked where they are written down: $this, self/static/parent,
typed parameters, typed or constructor-assigned properties, `$x = new X`
and `(new X)->m()`.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from deprecation_detector.parser.lexer import Lexer, LexerError, Token, TokenType, read_source
from deprecation_detector.parser.nodes import (
    HINT_PARAMETER,
    HINT_PROPERTY,
    HINT_RETURN,
    REF_CATCH,
    REF_CLASS_CONSTANT,
    REF_EXTENDS,
    REF_IMPLEMENTS,
    REF_INSTANCEOF,
    REF_NEW,
    REF_STATIC,
    REF_TRAIT,
    ClassDeclaration,
    MethodCall,
    MethodDeclaration,
    NameReference,
    Parameter,
    ParsedFile,
    PropertyDeclaration,
    TypeHint,
)


# Types that never name a class
BUILTIN_TYPES: Set[str] = {
    'int', 'integer', 'float', 'double', 'string', 'bool', 'boolean',
    'array', 'callable', 'iterable', 'object', 'mixed', 'void', 'null',
    'never', 'false', 'true', 'resource', 'self', 'static', 'parent',
}

MEMBER_MODIFIERS: Set[str] = {
    'public', 'protected', 'private', 'static', 'abstract', 'final',
    'readonly', 'var',
}

CLASS_MODIFIERS: Set[str] = {'abstract', 'final', 'readonly'}

CLASS_KEYWORDS: Set[str] = {'class', 'interface', 'trait', 'enum'}

SELF_NAMES: Set[str] = {'self', 'static'}


class ParseError(Exception):
    """Error during parsing."""
    def __init__(self, message: str, token: Token = None, line: int = None, column: int = None):
        self.token = token
        self.line = line or (token.line if token else 0)
        self.column = column or (token.column if token else 0)
        self.message = message
        if token:
            super().__init__(f"Parse error at line {token.line}, column {token.column}: {message}")
        elif line:
            super().__init__(f"Parse error at line {line}, column {column or 0}: {message}")
        else:
            super().__init__(f"Parse error: {message}")


@dataclass
class ParseDiagnostic:
    """A diagnostic message from parsing."""
    line: int
    column: int
    severity: str  # "error", "warning"
    code: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line,
            "column": self.column,
            "severity": self.severity,
            "code": self.code,
            "message": self.message,
        }


@dataclass
class ParseResult:
    """Result of parsing without raising."""
    parsed: Optional[ParsedFile]
    diagnostics: List[ParseDiagnostic]
    success: bool

    @property
    def errors(self) -> List[ParseDiagnostic]:
        return [d for d in self.diagnostics if d.severity == "error"]


@dataclass
class _Frame:
    """One open brace."""
    kind: str  # 'namespace', 'class', 'function', 'block'
    line: int = 0
    column: int = 0
    cls: Optional[ClassDeclaration] = None
    variables: Dict[str, str] = field(default_factory=dict)


@dataclass
class _ArrowScope:
    """Parameters of an arrow function, bound until token index end."""
    end: int
    variables: Dict[str, str]
    saved: Dict[str, Optional[str]]


class Parser:
    """
    Declaration/usage extractor for PHP token streams.

    Usage:
        parser = Parser(tokens, "src/Foo.php")
        parsed = parser.parse()
    """

    def __init__(self, tokens: List[Token], filename: str = "<unknown>"):
        self.tokens = []
        for token in tokens:
            if token.type in (TokenType.COMMENT, TokenType.OPEN_TAG):
                continue
            if token.type == TokenType.CLOSE_TAG:
                # ?> terminates a statement
                token = Token(TokenType.SEMICOLON, ';', token.line, token.column)
            self.tokens.append(token)
        self.filename = filename
        self.pos = 0
        self.length = len(self.tokens)
        self.prev: Optional[Token] = None

        self.namespace = ""
        self.imports: Dict[str, str] = {}
        self.frames: List[_Frame] = []
        self.top_variables: Dict[str, str] = {}
        self.pending_doc: Optional[str] = None
        self.pending_frame: Optional[_Frame] = None
        self.arrow_scopes: List[_ArrowScope] = []

        self.result = ParsedFile(path=filename)
        self._assigned_properties: Dict[Tuple[str, str], str] = {}
        self._deferred_property_calls: List[Tuple[ClassDeclaration, str, Token]] = []

    # =========================================================================
    # TOKEN ACCESS
    # =========================================================================

    def _current(self) -> Optional[Token]:
        """Get current token or None if at end."""
        if self.pos >= self.length:
            return None
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Optional[Token]:
        """Peek ahead by offset tokens."""
        pos = self.pos + offset
        if pos >= self.length:
            return None
        return self.tokens[pos]

    def _advance(self) -> Optional[Token]:
        """Advance one token and return it."""
        token = self._current()
        if token is not None:
            self.pos += 1
            if token.type != TokenType.DOC_COMMENT:
                self.prev = token
        return token

    def _expect(self, token_type: TokenType, message: str = None) -> Token:
        """Expect a specific token type, raise error if not found."""
        token = self._current()
        if token is None or token.type == TokenType.EOF:
            raise ParseError(message or f"Expected {token_type.name}, got end of file", token)
        if token.type != token_type:
            raise ParseError(message or f"Expected {token_type.name}, got {token.type.name}", token)
        return self._advance()

    @staticmethod
    def _is(token: Optional[Token], token_type: TokenType) -> bool:
        return token is not None and token.type == token_type

    @staticmethod
    def _is_word(token: Optional[Token], *words: str) -> bool:
        return token is not None and token.type == TokenType.NAME and token.value.lower() in words

    def _find_matching(self, index: int) -> Optional[int]:
        """Index of the token closing the bracket at index, or None."""
        pairs = {
            TokenType.LPAREN: TokenType.RPAREN,
            TokenType.LBRACKET: TokenType.RBRACKET,
            TokenType.LBRACE: TokenType.RBRACE,
        }
        open_type = self.tokens[index].type
        close_type = pairs[open_type]
        depth = 0
        for i in range(index, self.length):
            token_type = self.tokens[i].type
            if token_type == open_type:
                depth += 1
            elif token_type == close_type:
                depth -= 1
                if depth == 0:
                    return i
        return None

    def _skip_balanced(self) -> None:
        """Skip from an opening bracket past its matching close."""
        start = self._current()
        end = self._find_matching(self.pos)
        if end is None:
            raise ParseError(f"Unbalanced '{start.value}'", start)
        while self.pos <= end:
            self._advance()

    def _skip_attribute(self) -> None:
        start = self._advance()
        depth = 1
        while depth:
            token = self._advance()
            if token is None or token.type == TokenType.EOF:
                raise ParseError("Unterminated attribute", start)
            if token.type in (TokenType.LBRACKET, TokenType.ATTRIBUTE):
                depth += 1
            elif token.type == TokenType.RBRACKET:
                depth -= 1

    def _skip_initializer(self, stop: Tuple[TokenType, ...]) -> None:
        """
        Skip a constant, property or parameter default up to one of stop at
        bracket depth 0 (not consumed), recording the `Name::` and
        `new Name` references inside it.
        """
        depth = 0
        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                return
            if token.type in (TokenType.RBRACE, TokenType.RPAREN, TokenType.RBRACKET):
                if depth == 0:
                    return
                depth -= 1
            elif depth == 0 and token.type in stop:
                return
            elif token.type in (TokenType.LPAREN, TokenType.LBRACKET, TokenType.LBRACE):
                depth += 1
            elif token.type == TokenType.NAME and not (
                    self.prev is not None and self.prev.type in (TokenType.ARROW, TokenType.NULLSAFE_ARROW,
                                                                 TokenType.DOUBLE_COLON)):
                if self._is(self._peek(), TokenType.DOUBLE_COLON):
                    self._parse_static_access()
                    continue
                if self._is_word(token, 'new') and self._is(self._peek(), TokenType.NAME) \
                        and not self._is_word(self._peek(), 'class'):
                    self._parse_new()
                    continue
            self._advance()

    # =========================================================================
    # NAME RESOLUTION
    # =========================================================================

    def _qualify(self, name: str) -> str:
        """Prefix a declared name with the current namespace."""
        return f"{self.namespace}\\{name}" if self.namespace else name

    def _resolve(self, name: str) -> str:
        """Resolve a class-like name against the namespace and use imports."""
        if name.startswith('\\'):
            return name[1:]
        if name.lower().startswith('namespace\\'):
            return self._qualify(name[len('namespace\\'):])
        head, sep, rest = name.partition('\\')
        imported = self.imports.get(head.lower())
        if imported:
            return imported + sep + rest
        return self._qualify(name)

    def _current_class(self) -> Optional[ClassDeclaration]:
        for frame in reversed(self.frames):
            if frame.cls is not None:
                return frame.cls
        if self.pending_frame is not None:
            return self.pending_frame.cls
        return None

    def _in_class_body(self) -> bool:
        return bool(self.frames) and self.frames[-1].kind == 'class'

    def _in_function(self) -> bool:
        return any(frame.kind == 'function' for frame in self.frames)

    def _variables(self) -> Dict[str, str]:
        for frame in reversed(self.frames):
            if frame.kind == 'function':
                return frame.variables
        return self.top_variables

    def _special_class(self, word: str) -> Optional[str]:
        """Resolve self/static/parent to a class name."""
        cls = self._current_class()
        if cls is None:
            return None
        if word in SELF_NAMES:
            return cls.name
        if word == 'parent':
            return cls.parent
        return None

    def _class_name_of(self, token: Token) -> Tuple[Optional[str], bool]:
        """(resolved name, written explicitly) for a name used as a class."""
        word = token.value.lower()
        if word in SELF_NAMES or word == 'parent':
            return self._special_class(word), False
        return self._resolve(token.value), True

    def _variable_type(self, variable: str) -> Optional[str]:
        if variable == '$this':
            cls = self._current_class()
            return cls.name if cls else None
        return self._variables().get(variable)

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    def parse(self) -> ParsedFile:
        """Parse the token stream into a ParsedFile."""
        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                break
            self._close_arrow_scopes()
            self._step(token)

        if self.frames:
            frame = self.frames[-1]
            raise ParseError(
                f"Unexpected end of file: '{{' opened at line {frame.line} is never closed",
                line=frame.line, column=frame.column,
            )

        self._resolve_deferred_calls()
        return self.result

    def _step(self, token: Token) -> None:
        token_type = token.type

        if token_type == TokenType.DOC_COMMENT:
            self.pending_doc = token.value
            self._advance()
        elif token_type == TokenType.ATTRIBUTE:
            self._skip_attribute()
        elif token_type == TokenType.LBRACE:
            self._advance()
            frame = self.pending_frame or _Frame('block')
            frame.line, frame.column = token.line, token.column
            self.frames.append(frame)
            self.pending_frame = None
            self.pending_doc = None
        elif token_type == TokenType.RBRACE:
            self._advance()
            if not self.frames:
                raise ParseError("Unexpected '}' (unbalanced braces?)", token)
            self.frames.pop()
            self.pending_doc = None
        elif token_type == TokenType.SEMICOLON:
            self._advance()
            self.pending_doc = None
        elif token_type == TokenType.NAME:
            self._parse_name()
        elif token_type == TokenType.VARIABLE:
            self._parse_variable()
        else:
            self._advance()

    def _parse_name(self) -> None:
        token = self._current()
        word = token.value.lower()
        prev = self.prev
        nxt = self._peek()

        # ->name, ?->name, ::name
        if prev is not None and prev.type in (TokenType.ARROW, TokenType.NULLSAFE_ARROW, TokenType.DOUBLE_COLON):
            self._advance()
            return

        if self._is(nxt, TokenType.DOUBLE_COLON):
            self._parse_static_access()
        elif self._in_class_body() and (word in MEMBER_MODIFIERS or word in ('function', 'const', 'case', 'use')):
            self._parse_member()
        elif word == 'namespace' and not self._in_function():
            self._parse_namespace()
        elif word == 'use':
            if self._in_function() or self._is(prev, TokenType.RPAREN):
                self._advance()  # closure use (...)
            else:
                self._parse_use_imports()
        elif word in CLASS_KEYWORDS and self._is(nxt, TokenType.NAME):
            self._parse_class_declaration()
        elif word in ('function', 'fn'):
            self._parse_function(doc=self.pending_doc, modifiers=set())
        elif word == 'new':
            self._parse_new()
        elif word == 'instanceof':
            self._advance()
            target = self._current()
            if self._is(target, TokenType.NAME):
                name, explicit = self._class_name_of(target)
                if explicit:
                    self.result.references.append(
                        NameReference(name, target.line, target.column, REF_INSTANCEOF))
                self._advance()
        elif word == 'catch':
            self._parse_catch()
        else:
            # Class modifiers keep the pending doc comment for the declaration
            self._advance()

    # =========================================================================
    # NAMESPACES AND IMPORTS
    # =========================================================================

    def _parse_namespace(self) -> None:
        self._advance()
        name = ""
        if self._is(self._current(), TokenType.NAME):
            name = self._advance().value.lstrip('\\')
        self.namespace = name
        self.imports = {}
        self.result.namespace = name
        if self._is(self._current(), TokenType.LBRACE):
            self.pending_frame = _Frame('namespace')

    def _parse_use_imports(self) -> None:
        self._advance()
        kind = 'class'
        if self._is_word(self._current(), 'function', 'const'):
            kind = self._advance().value.lower()

        while True:
            name_token = self._expect(TokenType.NAME, "Expected name in use statement")
            prefix = name_token.value.lstrip('\\')

            if self._is(self._current(), TokenType.LBRACE):
                self._advance()
                prefix = prefix.rstrip('\\')
                while not self._is(self._current(), TokenType.RBRACE):
                    item_kind = kind
                    if self._is_word(self._current(), 'function', 'const'):
                        item_kind = self._advance().value.lower()
                    item = self._expect(TokenType.NAME, "Expected name in group use")
                    self._register_import(f"{prefix}\\{item.value}", item_kind)
                    if self._is(self._current(), TokenType.COMMA):
                        self._advance()
                self._advance()
            else:
                self._register_import(prefix, kind)

            if self._is(self._current(), TokenType.COMMA):
                self._advance()
                continue
            break

    def _register_import(self, fqn: str, kind: str) -> None:
        alias = fqn.rsplit('\\', 1)[-1]
        if self._is_word(self._current(), 'as'):
            self._advance()
            alias = self._expect(TokenType.NAME, "Expected alias after 'as'").value
        if kind == 'class':
            self.imports[alias.lower()] = fqn

    # =========================================================================
    # DECLARATIONS
    # =========================================================================

    def _parse_name_list(self, context: str) -> List[NameReference]:
        refs = []
        while True:
            token = self._expect(TokenType.NAME, f"Expected name after '{context}'")
            refs.append(NameReference(self._resolve(token.value), token.line, token.column, context))
            if not self._is(self._current(), TokenType.COMMA):
                return refs
            self._advance()

    def _parse_supertypes(self, cls: ClassDeclaration) -> None:
        if self._is_word(self._current(), 'extends'):
            self._advance()
            refs = self._parse_name_list(REF_EXTENDS)
            if cls.kind == 'interface':
                cls.interface_refs.extend(refs)
            else:
                cls.parent_ref = refs[0]
        if self._is_word(self._current(), 'implements'):
            self._advance()
            cls.interface_refs.extend(self._parse_name_list(REF_IMPLEMENTS))

    def _open_class(self, cls: ClassDeclaration) -> None:
        token = self._current()
        if not self._is(token, TokenType.LBRACE):
            raise ParseError(f"Expected '{{' to open {cls.kind} {cls.name}", token)
        self.result.references.extend(cls.super_type_refs)
        self.result.classes.append(cls)
        self.pending_frame = _Frame('class', cls=cls)
        self.pending_doc = None

    def _parse_class_declaration(self) -> None:
        doc = self.pending_doc
        keyword = self._advance()
        kind = keyword.value.lower()
        name_token = self._expect(TokenType.NAME, f"Expected {kind} name")
        cls = ClassDeclaration(
            name=self._qualify(name_token.value),
            kind=kind,
            line=keyword.line,
            column=keyword.column,
            doc=doc,
        )

        if kind == 'enum' and self._is(self._current(), TokenType.COLON):
            self._advance()
            self._parse_type()

        self._parse_supertypes(cls)
        self._open_class(cls)

    def _parse_anonymous_class(self, keyword: Token) -> None:
        self._advance()
        if self._is(self._current(), TokenType.LPAREN):
            self._skip_balanced()
        cls = ClassDeclaration(
            name=f"class@anonymous {self.filename}:{keyword.line}:{keyword.column}",
            kind='class',
            line=keyword.line,
            column=keyword.column,
        )
        self._parse_supertypes(cls)
        self._open_class(cls)

    def _parse_member(self) -> None:
        """Parse one member of a class body."""
        doc = self.pending_doc
        cls = self.frames[-1].cls
        modifiers: Set[str] = set()
        while True:
            token = self._current()
            if self._is(token, TokenType.ATTRIBUTE):
                self._skip_attribute()
            elif self._is(token, TokenType.NAME) and token.value.lower() in MEMBER_MODIFIERS:
                modifiers.add(self._advance().value.lower())
            else:
                break

        token = self._current()
        if self._is_word(token, 'function'):
            self._parse_function(doc=doc, modifiers=modifiers)
        elif self._is_word(token, 'const', 'case'):
            self._advance()
            self._skip_initializer((TokenType.SEMICOLON,))
        elif self._is_word(token, 'use'):
            self._parse_trait_use(cls)
        else:
            self._parse_property(cls, doc)

    def _parse_trait_use(self, cls: ClassDeclaration) -> None:
        self._advance()
        refs = self._parse_name_list(REF_TRAIT)
        cls.trait_refs.extend(refs)
        self.result.references.extend(refs)
        if self._is(self._current(), TokenType.LBRACE):
            # insteadof/as conflict resolution block
            self._skip_balanced()

    def _parse_property(self, cls: ClassDeclaration, doc: Optional[str]) -> None:
        type_refs: List[NameReference] = []
        if not self._is(self._current(), TokenType.VARIABLE):
            type_refs = self._parse_type()

        while self._is(self._current(), TokenType.VARIABLE):
            variable = self._advance()
            name = variable.value[1:]
            cls.properties.append(PropertyDeclaration(
                name=name,
                types=[ref.name for ref in type_refs],
                line=variable.line,
                column=variable.column,
                doc=doc,
            ))
            self._add_type_hints(type_refs, HINT_PROPERTY, f"{cls.name}::${name}")
            self._skip_initializer((TokenType.SEMICOLON, TokenType.COMMA, TokenType.LBRACE))
            if self._is(self._current(), TokenType.LBRACE):
                # property hooks
                self._skip_balanced()
                return
            if self._is(self._current(), TokenType.COMMA):
                self._advance()

    def _parse_type(self) -> List[NameReference]:
        """
        Parse a type declaration (?T, A|B, A&B, (A&B)|null).

        Returns the class-like names in it; builtin types are dropped.
        """
        refs = []
        depth = 0
        while True:
            token = self._current()
            if self._is(token, TokenType.QUESTION):
                self._advance()
                continue
            if self._is(token, TokenType.LPAREN):
                depth += 1
                self._advance()
                continue
            if not self._is(token, TokenType.NAME):
                break
            self._advance()
            if token.value.lower() not in BUILTIN_TYPES:
                refs.append(NameReference(self._resolve(token.value), token.line, token.column, ''))

            nxt = self._current()
            if self._is(nxt, TokenType.RPAREN) and depth:
                depth -= 1
                self._advance()
                nxt = self._current()
            if self._is(nxt, TokenType.PIPE):
                self._advance()
            elif self._is(nxt, TokenType.AMPERSAND) and self._peek() is not None \
                    and self._peek().type in (TokenType.NAME, TokenType.LPAREN):
                self._advance()
            else:
                break
        return refs

    def _add_type_hints(self, refs: List[NameReference], position: str, declared_in: str) -> None:
        for ref in refs:
            self.result.type_hints.append(TypeHint(ref.name, ref.line, ref.column, position, declared_in))

    def _parse_parameters(self, declared_in: str, cls: Optional[ClassDeclaration]) -> List[Parameter]:
        """Parse a parameter list; the opening paren is current."""
        self._expect(TokenType.LPAREN, "Expected '(' to open parameter list")
        params = []
        while not self._is(self._current(), TokenType.RPAREN):
            promoted = False
            while True:
                token = self._current()
                if self._is(token, TokenType.ATTRIBUTE):
                    self._skip_attribute()
                elif self._is_word(token, 'public', 'protected', 'private', 'readonly'):
                    promoted = True
                    self._advance()
                else:
                    break

            type_refs: List[NameReference] = []
            token = self._current()
            if token is not None and token.type not in (TokenType.VARIABLE, TokenType.AMPERSAND, TokenType.ELLIPSIS):
                type_refs = self._parse_type()
            while self._current() is not None and self._current().type in (TokenType.AMPERSAND, TokenType.ELLIPSIS):
                self._advance()

            variable = self._expect(TokenType.VARIABLE, "Expected parameter variable")
            types = [ref.name for ref in type_refs]
            params.append(Parameter(variable.value, types, variable.line, variable.column))
            self._add_type_hints(type_refs, HINT_PARAMETER, declared_in)
            if promoted and cls is not None:
                cls.properties.append(PropertyDeclaration(
                    variable.value[1:], types, variable.line, variable.column))

            self._skip_initializer((TokenType.COMMA,))
            if self._is(self._current(), TokenType.COMMA):
                self._advance()
            elif not self._is(self._current(), TokenType.RPAREN):
                raise ParseError("Expected ',' or ')' in parameter list", self._current())
        self._advance()
        return params

    def _parse_function(self, doc: Optional[str], modifiers: Set[str]) -> None:
        """Parse a method, function, closure or arrow function header."""
        keyword = self._advance()
        is_arrow = keyword.value.lower() == 'fn'
        if self._is(self._current(), TokenType.AMPERSAND):
            self._advance()

        name_token = None
        if not is_arrow and self._is(self._current(), TokenType.NAME):
            name_token = self._advance()

        is_method = name_token is not None and self._in_class_body()
        cls = self.frames[-1].cls if is_method else self._current_class()
        if is_method:
            declared_in = f"{cls.name}::{name_token.value}"
        elif name_token is not None:
            declared_in = self._qualify(name_token.value)
        else:
            declared_in = "{closure}"

        params = self._parse_parameters(declared_in, cls if is_method else None)

        if self._is_word(self._current(), 'use'):
            self._advance()
            if self._is(self._current(), TokenType.LPAREN):
                self._skip_balanced()

        return_refs: List[NameReference] = []
        if self._is(self._current(), TokenType.COLON):
            self._advance()
            return_refs = self._parse_type()
            self._add_type_hints(return_refs, HINT_RETURN, declared_in)

        if is_arrow:
            self._open_arrow_scope(params)
            self.pending_doc = None
            return

        variables: Dict[str, str] = {}
        if name_token is None:
            # closures see the enclosing variables
            variables.update(self._variables())
        for param in params:
            if len(param.types) == 1:
                variables[param.name] = param.types[0]

        if is_method:
            cls.methods.append(MethodDeclaration(
                name=name_token.value,
                owner=cls.name,
                line=name_token.line,
                column=name_token.column,
                parameters=params,
                return_types=[ref.name for ref in return_refs],
                doc=doc,
                is_static='static' in modifiers,
                is_abstract='abstract' in modifiers or cls.is_interface,
            ))
        self.pending_doc = None

        if self._is(self._current(), TokenType.LBRACE):
            self.pending_frame = _Frame('function', cls=cls, variables=variables)

    def _open_arrow_scope(self, params: List[Parameter]) -> None:
        """
        Bind arrow function parameters until the end of the arrow body.

        The body is a single expression, ending at the first `;` or `,`
        or unmatched closing bracket.
        """
        depth = 0
        end = self.length
        for index in range(self.pos, self.length):
            token_type = self.tokens[index].type
            if token_type in (TokenType.LPAREN, TokenType.LBRACKET, TokenType.LBRACE):
                depth += 1
            elif token_type in (TokenType.RPAREN, TokenType.RBRACKET, TokenType.RBRACE):
                if depth == 0:
                    end = index
                    break
                depth -= 1
            elif depth == 0 and token_type in (TokenType.SEMICOLON, TokenType.COMMA, TokenType.EOF):
                end = index
                break

        variables = self._variables()
        saved = {param.name: variables.get(param.name) for param in params}
        for param in params:
            if len(param.types) == 1:
                variables[param.name] = param.types[0]
            else:
                variables.pop(param.name, None)
        self.arrow_scopes.append(_ArrowScope(end, variables, saved))

    def _close_arrow_scopes(self) -> None:
        """Restore the variables shadowed by arrow functions that have ended."""
        while self.arrow_scopes and self.arrow_scopes[-1].end <= self.pos:
            scope = self.arrow_scopes.pop()
            for name, previous in scope.saved.items():
                if previous is None:
                    scope.variables.pop(name, None)
                else:
                    scope.variables[name] = previous

    # =========================================================================
    # USAGES
    # =========================================================================

    def _parse_static_access(self) -> None:
        """Name::member, Name::method(), Name::class, self::/static::/parent::."""
        token = self._advance()
        self._advance()  # ::
        class_name, explicit = self._class_name_of(token)
        member = self._current()

        if explicit:
            context = REF_CLASS_CONSTANT if self._is_word(member, 'class') else REF_STATIC
            self.result.references.append(NameReference(class_name, token.line, token.column, context))

        if class_name and self._is(member, TokenType.NAME) and self._is(self._peek(), TokenType.LPAREN):
            self.result.method_calls.append(
                MethodCall(class_name, member.value, member.line, member.column, is_static=explicit))

    def _parse_new(self) -> None:
        new_index = self.pos
        self._advance()
        target = self._current()

        if self._is_word(target, 'class'):
            self._parse_anonymous_class(target)
            return
        if not self._is(target, TokenType.NAME):
            return  # new $class, new (expr)

        class_name, explicit = self._class_name_of(target)
        if explicit:
            self.result.references.append(NameReference(class_name, target.line, target.column, REF_NEW))
        self._advance()
        if class_name is None:
            return

        # (new Foo(...))->bar() and new Foo(...)->bar()
        index = self.pos
        if index < self.length and self.tokens[index].type == TokenType.LPAREN:
            close = self._find_matching(index)
            if close is None:
                return
            index = close + 1
        wrapped = new_index > 0 and self.tokens[new_index - 1].type == TokenType.LPAREN
        if wrapped:
            if index >= self.length or self.tokens[index].type != TokenType.RPAREN:
                return
            index += 1
        if index + 2 < self.length \
                and self.tokens[index].type in (TokenType.ARROW, TokenType.NULLSAFE_ARROW) \
                and self.tokens[index + 1].type == TokenType.NAME \
                and self.tokens[index + 2].type == TokenType.LPAREN:
            member = self.tokens[index + 1]
            self.result.method_calls.append(MethodCall(class_name, member.value, member.line, member.column))

    def _parse_catch(self) -> None:
        self._advance()
        if not self._is(self._current(), TokenType.LPAREN):
            return
        self._advance()
        while self._is(self._current(), TokenType.NAME):
            token = self._advance()
            self.result.references.append(
                NameReference(self._resolve(token.value), token.line, token.column, REF_CATCH))
            if not self._is(self._current(), TokenType.PIPE):
                break
            self._advance()

    def _new_target(self, offset: int) -> Optional[str]:
        """Class name of `new Name` starting offset tokens ahead, if any."""
        keyword = self._peek(offset)
        target = self._peek(offset + 1)
        if not self._is_word(keyword, 'new') or not self._is(target, TokenType.NAME):
            return None
        if target.value.lower() == 'class':
            return None
        return self._class_name_of(target)[0]

    def _parse_variable(self) -> None:
        token = self._current()
        if self._is(self.prev, TokenType.DOUBLE_COLON):
            self._advance()  # static property
            return

        nxt = self._peek()
        if self._is(nxt, TokenType.EQUALS):
            variables = self._variables()
            new_type = self._new_target(2)
            if new_type:
                variables[token.value] = new_type
            else:
                variables.pop(token.value, None)
        elif nxt is not None and nxt.type in (TokenType.ARROW, TokenType.NULLSAFE_ARROW) \
                and self._is(self._peek(2), TokenType.NAME):
            member = self._peek(2)
            after = self._peek(3)
            if self._is(after, TokenType.LPAREN):
                receiver = self._variable_type(token.value)
                if receiver:
                    self.result.method_calls.append(
                        MethodCall(receiver, member.value, member.line, member.column))
            elif token.value == '$this':
                self._parse_this_property(member, after)

        self._advance()

    def _parse_this_property(self, member: Token, after: Optional[Token]) -> None:
        """$this->prop->method() and $this->prop = new Foo."""
        cls = self._current_class()
        if cls is None:
            return
        if self._is(after, TokenType.EQUALS):
            new_type = self._new_target(4)
            if new_type:
                self._assigned_properties[(cls.name, member.value)] = new_type
        elif after is not None and after.type in (TokenType.ARROW, TokenType.NULLSAFE_ARROW) \
                and self._is(self._peek(4), TokenType.NAME) and self._is(self._peek(5), TokenType.LPAREN):
            self._deferred_property_calls.append((cls, member.value, self._peek(4)))

    def _resolve_deferred_calls(self) -> None:
        """Property types may be declared after the methods that use them."""
        for cls, prop, method in self._deferred_property_calls:
            receiver = cls.property_type(prop) or self._assigned_properties.get((cls.name, prop))
            if receiver:
                self.result.method_calls.append(MethodCall(receiver, method.value, method.line, method.column))
        if self._deferred_property_calls:
            self.result.method_calls.sort(key=lambda call: (call.line, call.column))


def parse_source(source: str, filename: str = "<unknown>") -> ParsedFile:
    """Parse source code into a ParsedFile. Raises LexerError/ParseError."""
    lexer = Lexer(source, filename)
    tokens = lexer.tokenize_all()
    parser = Parser(tokens, filename)
    return parser.parse()


def parse_source_recovering(source: str, filename: str = "<unknown>") -> ParseResult:
    """
    Parse source without raising.

    Returns a ParseResult whose diagnostics describe the failure, if any.
    """
    try:
        parsed = parse_source(source, filename)
    except LexerError as e:
        return ParseResult(
            parsed=None,
            diagnostics=[ParseDiagnostic(e.line, e.column, "error", "LEXER_ERROR", str(e))],
            success=False,
        )
    except ParseError as e:
        return ParseResult(
            parsed=None,
            diagnostics=[ParseDiagnostic(e.line, e.column, "error", "PARSE_ERROR", str(e))],
            success=False,
        )
    return ParseResult(parsed=parsed, diagnostics=[], success=True)


def parse_file(filepath: str) -> ParsedFile:
    """Parse a file into a ParsedFile. Handles encoding fallback."""
    return parse_source(read_source(filepath), filepath)

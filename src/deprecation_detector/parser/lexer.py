"""
PHP Lexer (Tokenizer)

Converts raw .php source into a stream of tokens.
Handles: open/close tags, comments, doc comments, strings, heredocs,
variables, (qualified) names, numbers and operators.

Only the lexical detail needed for declaration and usage extraction is
kept: string contents are not interpolated and operators are not
classified beyond what the parser needs.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, List, Optional


class TokenType(Enum):
    """Types of tokens in PHP source."""
    OPEN_TAG = auto()        # <?php, <?=
    CLOSE_TAG = auto()       # ?>
    DOC_COMMENT = auto()     # /** ... */
    COMMENT = auto()         # // ..., # ..., /* ... */
    VARIABLE = auto()        # $name
    NAME = auto()            # Foo, \Foo\Bar, namespace\Foo, keywords
    STRING = auto()          # 'single', "double", heredoc, nowdoc
    NUMBER = auto()          # 123, 0x1F, 1.5e3
    DOUBLE_COLON = auto()    # ::
    ARROW = auto()           # ->
    NULLSAFE_ARROW = auto()  # ?->
    DOUBLE_ARROW = auto()    # =>
    LPAREN = auto()          # (
    RPAREN = auto()          # )
    LBRACE = auto()          # {
    RBRACE = auto()          # }
    LBRACKET = auto()        # [
    RBRACKET = auto()        # ]
    ATTRIBUTE = auto()       # #[
    SEMICOLON = auto()       # ;
    COMMA = auto()           # ,
    QUESTION = auto()        # ?
    COLON = auto()           # :
    PIPE = auto()            # |
    AMPERSAND = auto()       # &
    ELLIPSIS = auto()        # ...
    EQUALS = auto()          # =
    DOLLAR = auto()          # $ (variable variables, ${expr})
    OPERATOR = auto()        # any other operator
    EOF = auto()             # End of file


@dataclass
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: str
    line: int
    column: int

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, L{self.line}:{self.column})"


class LexerError(Exception):
    """Error during lexical analysis."""
    def __init__(self, message: str, line: int, column: int):
        self.line = line
        self.column = column
        super().__init__(f"Lexer error at line {line}, column {column}: {message}")


# Longest first: the lexer takes the first match.
MULTI_CHAR_OPERATORS = [
    ('...', TokenType.ELLIPSIS),
    ('?->', TokenType.NULLSAFE_ARROW),
    ('<=>', TokenType.OPERATOR),
    ('**=', TokenType.OPERATOR),
    ('===', TokenType.OPERATOR),
    ('!==', TokenType.OPERATOR),
    ('<<=', TokenType.OPERATOR),
    ('>>=', TokenType.OPERATOR),
    ('??=', TokenType.OPERATOR),
    ('::', TokenType.DOUBLE_COLON),
    ('->', TokenType.ARROW),
    ('=>', TokenType.DOUBLE_ARROW),
    ('==', TokenType.OPERATOR),
    ('!=', TokenType.OPERATOR),
    ('<>', TokenType.OPERATOR),
    ('<=', TokenType.OPERATOR),
    ('>=', TokenType.OPERATOR),
    ('&&', TokenType.OPERATOR),
    ('||', TokenType.OPERATOR),
    ('??', TokenType.OPERATOR),
    ('++', TokenType.OPERATOR),
    ('--', TokenType.OPERATOR),
    ('+=', TokenType.OPERATOR),
    ('-=', TokenType.OPERATOR),
    ('*=', TokenType.OPERATOR),
    ('/=', TokenType.OPERATOR),
    ('.=', TokenType.OPERATOR),
    ('%=', TokenType.OPERATOR),
    ('&=', TokenType.OPERATOR),
    ('|=', TokenType.OPERATOR),
    ('^=', TokenType.OPERATOR),
    ('<<', TokenType.OPERATOR),
    ('>>', TokenType.OPERATOR),
    ('**', TokenType.OPERATOR),
]

SINGLE_CHAR_TOKENS = {
    '(': TokenType.LPAREN,
    ')': TokenType.RPAREN,
    '{': TokenType.LBRACE,
    '}': TokenType.RBRACE,
    '[': TokenType.LBRACKET,
    ']': TokenType.RBRACKET,
    ';': TokenType.SEMICOLON,
    ',': TokenType.COMMA,
    '?': TokenType.QUESTION,
    ':': TokenType.COLON,
    '|': TokenType.PIPE,
    '&': TokenType.AMPERSAND,
    '=': TokenType.EQUALS,
}

OTHER_OPERATOR_CHARS = set('+-*/%.!~^<>@')


class Lexer:
    """
    Tokenizer for PHP source files.

    Usage:
        lexer = Lexer(source_text)
        tokens = list(lexer.tokenize())
    """

    @staticmethod
    def _is_ident_start(ch: str) -> bool:
        """Check if character can start a name (letter, underscore or non-ASCII)."""
        return ch == '_' or ch.isalpha() or ord(ch) > 0x7f

    @staticmethod
    def _is_ident_cont(ch: str) -> bool:
        """Check if character can continue a name."""
        return ch == '_' or ch.isalnum() or ord(ch) > 0x7f

    def __init__(self, source: str, filename: str = "<unknown>"):
        self.source = source
        self.filename = filename
        self.pos = 0
        self.line = 1
        self.column = 1
        self.length = len(source)

    def _current(self) -> Optional[str]:
        """Get current character or None if at end."""
        if self.pos >= self.length:
            return None
        return self.source[self.pos]

    def _peek(self, offset: int = 1) -> Optional[str]:
        """Peek ahead by offset characters."""
        pos = self.pos + offset
        if pos >= self.length:
            return None
        return self.source[pos]

    def _startswith(self, text: str) -> bool:
        return self.source.startswith(text, self.pos)

    def _advance(self, count: int = 1) -> str:
        """Advance count characters and return them."""
        consumed = []
        for _ in range(count):
            ch = self._current()
            if ch is None:
                break
            consumed.append(ch)
            self.pos += 1
            if ch == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        return ''.join(consumed)

    def _skip_whitespace(self) -> None:
        while self._current() is not None and self._current() in ' \t\r\n\f\v':
            self._advance()

    def _skip_inline_html(self) -> Optional[str]:
        """Skip text outside PHP tags. Returns the open tag found, or None at EOF."""
        while self.pos < self.length:
            if self._startswith('<?php'):
                return self._advance(5)
            if self._startswith('<?='):
                return self._advance(3)
            if self._startswith('<?') and not self._startswith('<?xml'):
                return self._advance(2)
            self._advance()
        return None

    def _read_line_comment(self) -> str:
        """Read a // or # comment. A close tag ends the comment."""
        result = []
        while True:
            ch = self._current()
            if ch is None or ch == '\n' or self._startswith('?>'):
                break
            result.append(ch)
            self._advance()
        return ''.join(result)

    def _read_block_comment(self, start_line: int, start_col: int) -> str:
        end = self.source.find('*/', self.pos + 2)
        if end == -1:
            raise LexerError("Unterminated comment", start_line, start_col)
        return self._advance(end + 2 - self.pos)

    def _read_string(self, quote_char: str) -> str:
        """Read a quoted string, handling escapes of the quote and backslash."""
        start_line = self.line
        start_col = self.column
        self._advance()

        result = []
        while True:
            ch = self._current()
            if ch is None:
                raise LexerError("Unterminated string", start_line, start_col)
            if ch == quote_char:
                self._advance()
                break
            if ch == '\\':
                self._advance()
                esc = self._current()
                if esc is None:
                    raise LexerError("Unterminated string", start_line, start_col)
                if esc not in (quote_char, '\\'):
                    result.append('\\')
                result.append(esc)
                self._advance()
            else:
                result.append(ch)
                self._advance()

        return ''.join(result)

    def _read_heredoc(self, start_line: int, start_col: int) -> str:
        """Read a heredoc or nowdoc starting at <<<."""
        self._advance(3)
        while self._current() in (' ', '\t'):
            self._advance()

        quote = None
        if self._current() in ('"', "'"):
            quote = self._advance()
        label_chars = []
        while self._current() is not None and self._is_ident_cont(self._current()):
            label_chars.append(self._advance())
        label = ''.join(label_chars)
        if not label:
            raise LexerError("Invalid heredoc label", start_line, start_col)
        if quote is not None:
            if self._current() != quote:
                raise LexerError("Invalid heredoc label", start_line, start_col)
            self._advance()
        if self._current() == '\r':
            self._advance()
        if self._current() == '\n':
            self._advance()

        # Body runs until a line whose first non-blank text is the label
        body = []
        while True:
            if self._current() is None:
                raise LexerError(f"Unterminated heredoc '{label}'", start_line, start_col)
            line_end = self.source.find('\n', self.pos)
            if line_end == -1:
                line_end = self.length
            line_text = self.source[self.pos:line_end]
            stripped = line_text.lstrip(' \t')
            if stripped.startswith(label):
                after = stripped[len(label):len(label) + 1]
                if not after or not self._is_ident_cont(after):
                    self._advance(len(line_text) - len(stripped) + len(label))
                    return '\n'.join(body)
            body.append(line_text)
            self._advance(line_end - self.pos + 1)

    def _read_name(self) -> str:
        """Read a name, including namespace separators (Foo\\Bar, \\Foo)."""
        result = []
        while True:
            ch = self._current()
            if ch is None:
                break
            if self._is_ident_cont(ch):
                result.append(ch)
                self._advance()
            elif ch == '\\' and self._peek() is not None and self._is_ident_start(self._peek()):
                result.append(ch)
                self._advance()
            elif ch == '\\' and self._peek() == '{':
                # Group use prefix: use App\Models\{User, Post};
                result.append(ch)
                self._advance()
                break
            else:
                break
        return ''.join(result)

    def _read_number(self) -> str:
        result = []
        while True:
            ch = self._current()
            if ch is None:
                break
            if ch.isalnum() or ch == '_':
                result.append(ch)
                self._advance()
            elif ch == '.' and self._peek() is not None and self._peek().isdigit():
                result.append(ch)
                self._advance()
            elif ch in '+-' and result and result[-1] in 'eE' and not ''.join(result).lower().startswith('0x'):
                result.append(ch)
                self._advance()
            else:
                break
        return ''.join(result)

    def tokenize(self, include_comments: bool = False) -> Iterator[Token]:
        """
        Generate tokens from the source.

        Args:
            include_comments: If True, emit COMMENT tokens. Doc comments are
                always emitted since declarations carry their markers there.
        """
        in_php = False
        while True:
            if not in_php:
                tag_line, tag_col = self.line, self.column
                tag = self._skip_inline_html()
                if tag is None:
                    yield Token(TokenType.EOF, '', self.line, self.column)
                    return
                in_php = True
                yield Token(TokenType.OPEN_TAG, tag, tag_line, tag_col)
                continue

            self._skip_whitespace()
            ch = self._current()
            start_line = self.line
            start_col = self.column

            if ch is None:
                yield Token(TokenType.EOF, '', start_line, start_col)
                return

            if self._startswith('?>'):
                self._advance(2)
                if self._current() == '\n':
                    self._advance()
                in_php = False
                yield Token(TokenType.CLOSE_TAG, '?>', start_line, start_col)
                continue

            # Comments
            if self._startswith('#['):
                self._advance(2)
                yield Token(TokenType.ATTRIBUTE, '#[', start_line, start_col)
                continue

            if ch == '#' or self._startswith('//'):
                comment = self._read_line_comment()
                if include_comments:
                    yield Token(TokenType.COMMENT, comment, start_line, start_col)
                continue

            if self._startswith('/**') and not self._startswith('/**/'):
                comment = self._read_block_comment(start_line, start_col)
                yield Token(TokenType.DOC_COMMENT, comment, start_line, start_col)
                continue

            if self._startswith('/*'):
                comment = self._read_block_comment(start_line, start_col)
                if include_comments:
                    yield Token(TokenType.COMMENT, comment, start_line, start_col)
                continue

            # Strings
            if ch in ('"', "'", '`'):
                value = self._read_string(ch)
                yield Token(TokenType.STRING, value, start_line, start_col)
                continue

            if self._startswith('<<<'):
                value = self._read_heredoc(start_line, start_col)
                yield Token(TokenType.STRING, value, start_line, start_col)
                continue

            # Variables
            if ch == '$':
                nxt = self._peek()
                if nxt is not None and self._is_ident_start(nxt):
                    self._advance()
                    name = self._read_name()
                    yield Token(TokenType.VARIABLE, '$' + name, start_line, start_col)
                else:
                    self._advance()
                    yield Token(TokenType.DOLLAR, '$', start_line, start_col)
                continue

            # Names (keywords included, the parser tells them apart)
            if self._is_ident_start(ch) or (ch == '\\' and self._peek() is not None
                                            and self._is_ident_start(self._peek())):
                value = self._read_name()
                yield Token(TokenType.NAME, value, start_line, start_col)
                continue

            if ch.isdigit() or (ch == '.' and self._peek() is not None and self._peek().isdigit()):
                value = self._read_number()
                yield Token(TokenType.NUMBER, value, start_line, start_col)
                continue

            matched = False
            for text, token_type in MULTI_CHAR_OPERATORS:
                if self._startswith(text):
                    self._advance(len(text))
                    yield Token(token_type, text, start_line, start_col)
                    matched = True
                    break
            if matched:
                continue

            if ch in SINGLE_CHAR_TOKENS:
                self._advance()
                yield Token(SINGLE_CHAR_TOKENS[ch], ch, start_line, start_col)
                continue

            if ch in OTHER_OPERATOR_CHARS:
                self._advance()
                yield Token(TokenType.OPERATOR, ch, start_line, start_col)
                continue

            raise LexerError(f"Unexpected character {ch!r}", start_line, start_col)

    def tokenize_all(self, include_comments: bool = False) -> List[Token]:
        """Convenience method to get all tokens as a list."""
        return list(self.tokenize(include_comments))


def read_source(filepath: str) -> str:
    """Read a source file, falling back through common encodings."""
    for encoding in ['utf-8-sig', 'utf-8']:
        try:
            with open(filepath, 'r', encoding=encoding) as f:
                return f.read()
        except UnicodeDecodeError:
            continue
    # latin-1 always succeeds
    with open(filepath, 'r', encoding='latin-1') as f:
        return f.read()


def tokenize_file(filepath: str, **kwargs) -> List[Token]:
    """Tokenize a file and return all tokens."""
    lexer = Lexer(read_source(filepath), filename=filepath)
    return lexer.tokenize_all(**kwargs)

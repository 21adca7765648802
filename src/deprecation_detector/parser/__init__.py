"""
deprecation_detector.parser - PHP Source Front-End

Lexer and declaration/usage parser for PHP files.
Converts .php files into ParsedFile records.
"""

from deprecation_detector.parser.lexer import Lexer, Token, TokenType, LexerError, read_source, tokenize_file
from deprecation_detector.parser.nodes import (
    ClassDeclaration,
    MethodCall,
    MethodDeclaration,
    NameReference,
    Parameter,
    ParsedFile,
    PropertyDeclaration,
    TypeHint,
)
from deprecation_detector.parser.parser import (
    Parser,
    ParseError,
    ParseDiagnostic,
    ParseResult,
    parse_file,
    parse_source,
    parse_source_recovering,
)

__all__ = [
    # Lexer
    "Lexer",
    "Token",
    "TokenType",
    "LexerError",
    "read_source",
    "tokenize_file",
    # Parser
    "Parser",
    "ParseError",
    "ParseDiagnostic",
    "ParseResult",
    "parse_file",
    "parse_source",
    "parse_source_recovering",
    # Parsed file model
    "ClassDeclaration",
    "MethodCall",
    "MethodDeclaration",
    "NameReference",
    "Parameter",
    "ParsedFile",
    "PropertyDeclaration",
    "TypeHint",
]

"""
Tests for the PHP declaration and usage parser.
"""

import pytest
from deprecation_detector.parser import ParseError, parse_source, parse_source_recovering
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
)

from conftest import parse


MAILER = """
    <?php
    namespace App;

    class Mailer
    {
        private Transport $transport;
        private $logger;

        public function __construct(private Formatter $formatter)
        {
            $this->logger = new Logger();
        }

        public function send(Message $message): ?Receipt
        {
            $message->validate();
            $this->transport->deliver($message);
            $this->logger->info('sent');
            $this->formatter->format($message);
            $copy = new Message();
            $copy->validate();
            self::helper();
            parent::send($message);
            $unknown->foo();
            (new Envelope($message))->seal();
            return $this->finish();
        }
    }
"""


class TestBasicParsing:
    """Test basic parsing functionality."""

    def test_empty_source(self):
        parsed = parse_source("")
        assert parsed.classes == []
        assert parsed.references == []

    def test_inline_html_only(self):
        parsed = parse_source("<html><body>no php here</body></html>")
        assert parsed.classes == []

    def test_path_is_kept(self):
        parsed = parse_source("<?php class A {}", "src/A.php")
        assert parsed.path == "src/A.php"


class TestNameResolution:
    """Test namespace and use import resolution."""

    def test_declared_names_are_qualified(self):
        parsed = parse("""
            <?php
            namespace App\\Controller;

            class HomeController extends BaseController implements \\Countable
            {
            }
        """)
        assert parsed.namespace == "App\\Controller"
        cls = parsed.classes[0]
        assert cls.name == "App\\Controller\\HomeController"
        assert cls.parent == "App\\Controller\\BaseController"
        assert cls.interfaces == ["Countable"]

    def test_usages_resolve_through_imports(self):
        parsed = parse("""
            <?php
            namespace App;

            use Acme\\Http\\Request;
            use Acme\\Http\\Response as HttpResponse;
            use Acme\\Models\\{User, Post as Article};

            function build()
            {
                $request = new Request();
                $response = HttpResponse::create();
                $name = Article::class;
                if ($x instanceof User) {
                }
                try {
                } catch (\\RuntimeException | Acme\\Error $e) {
                }
            }
        """)
        refs = [(ref.name, ref.context) for ref in parsed.references]
        assert refs == [
            ("Acme\\Http\\Request", REF_NEW),
            ("Acme\\Http\\Response", REF_STATIC),
            ("Acme\\Models\\Post", REF_CLASS_CONSTANT),
            ("Acme\\Models\\User", REF_INSTANCEOF),
            ("RuntimeException", REF_CATCH),
            ("App\\Acme\\Error", REF_CATCH),
        ]

    def test_static_call_is_recorded(self):
        parsed = parse("""
            <?php
            use Acme\\Http\\Response as HttpResponse;
            HttpResponse::create();
        """)
        call = parsed.method_calls[0]
        assert call.class_name == "Acme\\Http\\Response"
        assert call.method == "create"
        assert call.is_static

    def test_reference_positions(self):
        parsed = parse("""
            <?php
            $a = new Old();
        """)
        ref = parsed.references[0]
        assert (ref.line, ref.column) == (2, 10)


class TestDeclarations:
    """Test class, interface and member declarations."""

    SOURCE = """
        <?php
        namespace Acme;

        /**
         * @deprecated
         */
        abstract class Base implements Runnable, \\Countable
        {
            use LoggerTrait;

            const VERSION = '1.0';

            /** Runs it. */
            abstract public function run(array $args = []): void;

            public static function create(): static
            {
                return new static();
            }
        }

        interface Runnable extends Startable, Stoppable
        {
            public function run(array $args = []): void;
        }
    """

    def test_class_header(self):
        base = parse(self.SOURCE).classes[0]
        assert base.name == "Acme\\Base"
        assert base.kind == "class"
        assert base.parent is None
        assert base.interfaces == ["Acme\\Runnable", "Countable"]
        assert [ref.name for ref in base.trait_refs] == ["Acme\\LoggerTrait"]

    def test_doc_comment_survives_modifiers(self):
        """The doc comment before `abstract class` belongs to the class."""
        base = parse(self.SOURCE).classes[0]
        assert "@deprecated" in base.doc

    def test_methods(self):
        base = parse(self.SOURCE).classes[0]
        assert [m.name for m in base.methods] == ["run", "create"]
        run, create = base.methods
        assert run.is_abstract
        assert run.doc == "/** Runs it. */"
        assert create.is_static
        assert create.doc is None

    def test_interface_extends_list(self):
        runnable = parse(self.SOURCE).get_class("acme\\runnable")
        assert runnable.is_interface
        assert runnable.parent is None
        assert runnable.interfaces == ["Acme\\Startable", "Acme\\Stoppable"]
        assert runnable.methods[0].is_abstract

    def test_supertype_references(self):
        parsed = parse(self.SOURCE)
        contexts = [(ref.name, ref.context) for ref in parsed.references]
        assert ("Acme\\Runnable", REF_IMPLEMENTS) in contexts
        assert ("Acme\\LoggerTrait", REF_TRAIT) in contexts
        assert ("Acme\\Startable", REF_EXTENDS) in contexts

    def test_new_static_is_not_a_reference(self):
        parsed = parse(self.SOURCE)
        assert all(ref.context != REF_NEW for ref in parsed.references)

    def test_anonymous_class(self):
        parsed = parse("""
            <?php
            $handler = new class($x) extends Base implements Handler {
                public function handle() {}
            };
        """)
        cls = parsed.classes[0]
        assert cls.name.startswith("class@anonymous")
        assert cls.parent == "Base"
        assert cls.interfaces == ["Handler"]
        assert [m.name for m in cls.methods] == ["handle"]


class TestMethodCalls:
    """Test receiver type tracking for method calls."""

    def test_receivers(self):
        parsed = parse(MAILER)
        calls = [(call.class_name, call.method) for call in parsed.method_calls]
        assert calls == [
            ("App\\Message", "validate"),
            ("App\\Transport", "deliver"),
            ("App\\Logger", "info"),
            ("App\\Formatter", "format"),
            ("App\\Message", "validate"),
            ("App\\Mailer", "helper"),
            ("App\\Envelope", "seal"),
            ("App\\Mailer", "finish"),
        ]

    def test_unknown_receiver_is_ignored(self):
        parsed = parse(MAILER)
        assert "foo" not in [call.method for call in parsed.method_calls]

    def test_parent_without_parent_class_is_ignored(self):
        parsed = parse(MAILER)
        assert "send" not in [call.method for call in parsed.method_calls]

    def test_new_then_call(self):
        parsed = parse("""
            <?php
            (new Builder())->build();
        """)
        assert [(c.class_name, c.method) for c in parsed.method_calls] == [("Builder", "build")]

    def test_arrow_function_parameters_stay_in_the_arrow(self):
        parsed = parse("""
            <?php
            $x = new Good();
            $g = fn(Old $x) => $x->inner();
            $x->outer();
        """)
        calls = [(c.class_name, c.method) for c in parsed.method_calls]
        assert calls == [("Old", "inner"), ("Good", "outer")]

    def test_untyped_arrow_parameter_shadows_outer_variable(self):
        parsed = parse("""
            <?php
            $x = new Good();
            $items = array_map(fn($x) => $x->inner(), $items);
            $x->outer();
        """)
        calls = [(c.class_name, c.method) for c in parsed.method_calls]
        assert calls == [("Good", "outer")]

    def test_nested_arrow_functions(self):
        parsed = parse("""
            <?php
            $f = fn(A $a) => fn(B $b) => $a->first($b->second());
            $a->third();
        """)
        calls = [(c.class_name, c.method) for c in parsed.method_calls]
        assert calls == [("A", "first"), ("B", "second")]


class TestInitializers:
    """Test class references inside constant, property and parameter defaults."""

    SOURCE = """
        <?php
        namespace App;

        use Acme\\Old;

        class Holder
        {
            const A = Old::X, B = [Old::Y];
            private $b = Old::class;
            public ?Old $c = null;

            public function __construct(private $d = new Old(), $e = self::A)
            {
            }
        }
    """

    def test_references_are_recorded(self):
        parsed = parse(self.SOURCE)
        refs = [(ref.name, ref.line, ref.context) for ref in parsed.references]
        assert refs == [
            ("Acme\\Old", 8, REF_STATIC),
            ("Acme\\Old", 8, REF_STATIC),
            ("Acme\\Old", 9, REF_CLASS_CONSTANT),
            ("Acme\\Old", 12, REF_NEW),
        ]

    def test_declarations_are_unaffected(self):
        cls = parse(self.SOURCE).classes[0]
        assert [prop.name for prop in cls.properties] == ["b", "c", "d"]
        assert [param.name for param in cls.methods[0].parameters] == ["$d", "$e"]


class TestTypeHints:
    """Test type hint extraction."""

    def test_declaration_positions(self):
        parsed = parse(MAILER)
        hints = [(hint.name, hint.position) for hint in parsed.type_hints]
        assert hints == [
            ("App\\Transport", HINT_PROPERTY),
            ("App\\Formatter", HINT_PARAMETER),
            ("App\\Message", HINT_PARAMETER),
            ("App\\Receipt", HINT_RETURN),
        ]

    def test_declared_in(self):
        parsed = parse(MAILER)
        assert parsed.type_hints[0].declared_in == "App\\Mailer::$transport"
        assert parsed.type_hints[2].declared_in == "App\\Mailer::send"

    def test_compound_types_drop_builtins(self):
        parsed = parse("""
            <?php
            function f(?Foo $a, int|Bar $b, (A&B)|null $c): static|Baz {}
        """)
        assert [hint.name for hint in parsed.type_hints] == ["Foo", "Bar", "A", "B", "Baz"]


class TestErrors:
    """Test failure reporting."""

    def test_unclosed_brace_raises(self):
        with pytest.raises(ParseError):
            parse_source("<?php class A {")

    def test_stray_brace_raises(self):
        with pytest.raises(ParseError):
            parse_source("<?php }")

    def test_recovering_parse_reports_parse_error(self):
        result = parse_source_recovering("<?php class A {", "broken.php")
        assert not result.success
        assert result.parsed is None
        assert result.errors[0].code == "PARSE_ERROR"

    def test_recovering_parse_reports_lexer_error(self):
        result = parse_source_recovering("<?php $x = 'unterminated;")
        assert not result.success
        assert result.errors[0].code == "LEXER_ERROR"

    def test_recovering_parse_success(self):
        result = parse_source_recovering("<?php class A {}")
        assert result.success
        assert result.diagnostics == []
        assert result.parsed.classes[0].name == "A"

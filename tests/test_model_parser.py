"""Tests for the model DSL lexer and parser."""

import pytest

from typed_ledger.declarations import Annotation, DeclarationKind, Import
from typed_ledger.errors import ModelSyntaxError
from typed_ledger.parsing.model_lexer import ModelLexer
from typed_ledger.parsing.model_parser import ModelParser


class TestModelLexer:
    """Tests for the model lexer."""

    def test_tokenize_declaration_header(self):
        """Test tokenizing a declaration header."""
        lexer = ModelLexer()
        lexer.build()

        tokens = lexer.tokenize("asset Car identified by vin {")
        token_types = [t.type for t in tokens]

        assert token_types == ["ASSET", "IDENTIFIER", "IDENTIFIED", "BY", "IDENTIFIER", "LBRACE"]

    def test_tokenize_fields(self):
        """Test tokenizing value and relationship fields."""
        lexer = ModelLexer()
        lexer.build()

        tokens = lexer.tokenize("o String[] tags\n--> Trader owner")
        token_types = [t.type for t in tokens]

        assert token_types == [
            "FIELD", "IDENTIFIER", "LBRACKET", "RBRACKET", "IDENTIFIER",
            "ARROW", "IDENTIFIER", "IDENTIFIER",
        ]

    def test_comments_are_skipped(self):
        """Test that line and block comments produce no tokens."""
        lexer = ModelLexer()
        lexer.build()

        tokens = lexer.tokenize("// line\n/* block\nspanning */ asset")
        assert [t.type for t in tokens] == ["ASSET"]
        assert tokens[0].lineno == 3

    def test_numbers_and_strings(self):
        """Test numeric and string literal values."""
        lexer = ModelLexer()
        lexer.build()

        tokens = lexer.tokenize("42 -7 3.5 1e-05 \"a\\\"b\" 'single'")
        assert [(t.type, t.value) for t in tokens] == [
            ("INTEGER", 42),
            ("INTEGER", -7),
            ("DECIMAL", 3.5),
            ("DECIMAL", 1e-05),
            ("STRING", 'a"b'),
            ("STRING", "single"),
        ]

    def test_regex_literal(self):
        """Test that a regex literal carries its body and flags."""
        lexer = ModelLexer()
        lexer.build()

        tokens = lexer.tokenize(r"/^[A-Z]{3}\/x$/i")
        assert tokens[0].type == "REGEX"
        assert tokens[0].value == (r"^[A-Z]{3}\/x$", "i")

    def test_keywords_are_case_sensitive(self):
        """Test that capitalized keywords are plain identifiers."""
        lexer = ModelLexer()
        lexer.build()

        tokens = lexer.tokenize("Asset asset")
        assert [t.type for t in tokens] == ["IDENTIFIER", "ASSET"]

    def test_illegal_character(self):
        """Test that an illegal character reports its position."""
        lexer = ModelLexer()
        lexer.build()

        with pytest.raises(ModelSyntaxError) as exc_info:
            lexer.tokenize("asset Car\n  # {")
        assert exc_info.value.column == 3
        assert exc_info.value.token == "#"


class TestModelParser:
    """Tests for the model parser."""

    def test_parse_namespace_and_declarations(self):
        """Test parsing a namespace with several declaration kinds."""
        parser = ModelParser()
        model = parser.parse("""
            namespace org.acme.vehicles

            participant Owner identified by email {
                o String email
            }

            asset Car identified by vin {
                o String vin
                --> Owner owner
            }

            event CarSold {
                --> Car car
            }
        """)

        assert model.namespace == "org.acme.vehicles"
        assert [d.name for d in model.declarations] == ["Owner", "Car", "CarSold"]
        car = model.get("Car")
        assert car is not None
        assert car.kind is DeclarationKind.ASSET
        assert car.identified_by == "vin"
        assert car.fqn == "org.acme.vehicles.Car"
        owner_field = car.fields[1]
        assert owner_field.name == "owner"
        assert owner_field.is_relationship
        assert owner_field.type_name == "Owner"

    def test_parse_abstract_and_extends(self):
        """Test abstract declarations and super types."""
        parser = ModelParser()
        model = parser.parse("""
            namespace test
            abstract asset Registry identified by id {
                o String id
            }
            asset AssetRegistry extends Registry {
            }
        """)

        registry, asset_registry = model.declarations
        assert registry.is_abstract
        assert not asset_registry.is_abstract
        assert asset_registry.super_type == "Registry"
        assert asset_registry.fields == ()

    def test_parse_field_modifiers(self):
        """Test optional, array, default, range and regex modifiers."""
        parser = ModelParser()
        model = parser.parse("""
            namespace test
            concept Settings {
                o String code regex=/^[A-Z]+$/i
                o Integer level default=3 range=[1, 5]
                o Double ratio range=[, 1.0] optional
                o Boolean[] flags optional
                o String label default="none"
            }
        """)

        code, level, ratio, flags, label = model.declarations[0].fields
        assert code.regex == "(?i)^[A-Z]+$"
        assert level.default == 3
        assert level.range == (1, 5)
        assert ratio.range == (None, 1.0)
        assert ratio.is_optional
        assert flags.is_array and flags.is_optional
        assert label.default == "none"

    def test_parse_enum(self):
        """Test parsing an enum declaration."""
        parser = ModelParser()
        model = parser.parse("""
            namespace test
            enum Colour {
                o RED
                o GREEN
            }
        """)

        colour = model.declarations[0]
        assert colour.kind is DeclarationKind.ENUM
        assert colour.values == ("RED", "GREEN")
        assert colour.fields == ()

    def test_parse_imports(self):
        """Test single-type and wildcard imports."""
        parser = ModelParser()
        model = parser.parse("""
            namespace org.acme.sales
            import org.acme.base.Customer
            import org.acme.shared.*
        """)

        assert model.imports == (
            Import(namespace="org.acme.base", name="Customer"),
            Import(namespace="org.acme.shared", name=None),
        )
        assert model.imports[1].is_wildcard
        assert model.declarations == ()

    def test_parse_annotations(self):
        """Test decorator and bracketed annotations are captured."""
        parser = ModelParser()
        model = parser.parse("""
            namespace test
            @Deprecated
            @Label("Vehicle", 2)
            [display: "Car", hidden]
            asset Car identified by vin {
                o String vin
            }
        """)

        assert model.declarations[0].annotations == (
            Annotation(name="Deprecated"),
            Annotation(name="Label", arguments=("Vehicle", 2)),
            Annotation(name="display", arguments=("Car",)),
            Annotation(name="hidden"),
        )

    def test_keyword_field_names(self):
        """Test that keywords may be used as field names."""
        parser = ModelParser()
        model = parser.parse("""
            namespace test
            concept Entry {
                o String event
                o Integer range
                o String o
            }
        """)

        assert [f.name for f in model.declarations[0].fields] == ["event", "range", "o"]

    def test_source_name_is_recorded(self):
        """Test that the source name is kept on the parsed file."""
        parser = ModelParser()
        model = parser.parse("namespace test", source_name="test.cto")
        assert model.source_name == "test.cto"

    def test_missing_namespace(self):
        """Test that a model without a namespace is rejected."""
        parser = ModelParser()
        with pytest.raises(ModelSyntaxError):
            parser.parse("asset Car identified by vin { o String vin }")

    def test_relationship_cannot_have_default(self):
        """Test that relationship fields reject defaults."""
        parser = ModelParser()
        with pytest.raises(ModelSyntaxError) as exc_info:
            parser.parse("""
                namespace test
                asset Car identified by vin {
                    o String vin
                    --> Owner owner default="x"
                }
            """)
        assert "owner" in str(exc_info.value)

    def test_duplicate_modifier(self):
        """Test that repeating a modifier is a syntax error."""
        parser = ModelParser()
        with pytest.raises(ModelSyntaxError, match="Duplicate field modifier"):
            parser.parse("""
                namespace test
                concept C {
                    o String s optional optional
                }
            """)

    def test_unqualified_import(self):
        """Test that an import without a namespace is rejected."""
        parser = ModelParser()
        with pytest.raises(ModelSyntaxError, match="not fully qualified") as exc_info:
            parser.parse("namespace test\nimport Owner\nconcept C {}", source_name="imp.cto")
        assert exc_info.value.source == "imp.cto"

    def test_rule_error_does_not_leak_into_next_parse(self):
        """Test that a parser used after a rejected source parses cleanly."""
        parser = ModelParser()
        with pytest.raises(ModelSyntaxError):
            parser.parse("namespace test\nconcept C {\n  o String s optional optional\n}")
        model = parser.parse("namespace test\nconcept C {\n  o String s optional\n}")
        assert model.declarations[0].fields[0].is_optional

    def test_syntax_error_position(self):
        """Test that syntax errors carry line and column."""
        parser = ModelParser()
        with pytest.raises(ModelSyntaxError) as exc_info:
            parser.parse("namespace test\nasset Car {\n  o String\n}", source_name="bad.cto")
        err = exc_info.value
        assert err.line == 4
        assert err.column == 1
        assert err.source == "bad.cto"
        assert "bad.cto" in str(err)

    def test_parser_is_reusable(self):
        """Test that one parser instance parses several sources."""
        parser = ModelParser()
        first = parser.parse("namespace a")
        second = parser.parse("namespace b\nconcept C {}")
        assert first.namespace == "a"
        assert second.namespace == "b"
        assert second.declarations[0].namespace == "b"

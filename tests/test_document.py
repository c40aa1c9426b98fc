"""
Tests for configuration documents: composing, splitting into blocks, bodies.
"""

from queryrunner.config.document import AttributeSchema, load_document, parse_document
from queryrunner.resolver import BLOCK_SCHEMA


CONFIG = """\
query_runner:
  dummy:
    default:
      columns: [a]

query:
  hoge:
    runner: ${query_runner.dummy.default}
    rows: []

notify:
  channel: general
"""


class TestParseDocument:
    def test_splits_blocks_and_remain(self):
        document, diags = parse_document(CONFIG)
        assert not diags

        blocks, remain, diags = document.partial_content(BLOCK_SCHEMA)
        assert not diags
        assert [(b.type, b.labels) for b in blocks] == [
            ("query_runner", ("dummy", "default")),
            ("query", ("hoge",)),
        ]
        assert [a.name for a in remain] == ["notify"]

    def test_block_ranges_point_at_labels(self):
        document, _ = parse_document(CONFIG)
        blocks, _, _ = document.partial_content(BLOCK_SCHEMA)

        runner = blocks[0]
        assert str(runner.def_range) == "config.yaml:3,5-12"
        assert str(runner) == 'query_runner "dummy" "default"'

    def test_duplicate_labels_survive_composition(self):
        src = "query:\n  hoge:\n    rows: []\n  hoge:\n    rows: []\n"
        document, diags = parse_document(src)
        assert not diags

        blocks, _, _ = document.partial_content(BLOCK_SCHEMA)
        assert [b.labels for b in blocks] == [("hoge",), ("hoge",)]

    def test_syntax_error_is_located(self):
        _, diags = parse_document("query:\n  hoge: [unclosed\n", "broken.yaml")
        assert diags.has_errors()
        assert diags[0].summary == "Invalid YAML syntax"
        assert diags[0].subject.filename == "broken.yaml"

    def test_top_level_must_be_mapping(self):
        _, diags = parse_document("- a\n- b\n")
        assert diags[0].summary == "Invalid configuration document"

    def test_empty_document(self):
        document, diags = parse_document("")
        assert not diags
        blocks, remain, _ = document.partial_content(BLOCK_SCHEMA)
        assert blocks == []
        assert len(remain) == 0

    def test_block_body_must_be_mapping(self):
        document, _ = parse_document("query:\n  hoge: 1\n")
        blocks, _, diags = document.partial_content(BLOCK_SCHEMA)
        assert diags[0].summary == "Invalid block body"

    def test_empty_block_body(self):
        document, _ = parse_document("query:\n  hoge:\n")
        blocks, _, diags = document.partial_content(BLOCK_SCHEMA)
        assert not diags
        assert len(blocks[0].body) == 0


class TestBody:
    def _body(self, src):
        document, _ = parse_document(src)
        blocks, _, _ = document.partial_content(BLOCK_SCHEMA)
        return blocks[0].body

    def test_partial_content(self):
        body = self._body("query:\n  hoge:\n    runner: x\n    sql: y\n    extra: z\n")

        content, remain, diags = body.partial_content([AttributeSchema("runner", required=True)])

        assert not diags
        assert list(content) == ["runner"]
        assert [a.name for a in remain] == ["sql", "extra"]

    def test_missing_required_attribute(self):
        body = self._body("query:\n  hoge:\n    sql: y\n")

        _, _, diags = body.partial_content([AttributeSchema("runner", required=True)])

        assert diags[0].summary == "Missing required argument"
        assert 'The argument "runner" is required' in diags[0].detail
        assert diags[0].subject == body.missing_item_range

    def test_content_rejects_unknown_attributes(self):
        body = self._body("query:\n  hoge:\n    sql: y\n    nope: 1\n")

        content, diags = body.content([AttributeSchema("sql")])

        assert list(content) == ["sql"]
        assert diags[0].summary == "Unsupported argument"
        assert '"nope"' in diags[0].detail

    def test_duplicate_attribute(self):
        body = self._body("query:\n  hoge:\n    sql: a\n    sql: b\n")

        attrs, diags = body.just_attributes()

        assert len(attrs) == 1
        assert diags[0].summary == "Duplicate argument"


class TestLoadDocument:
    def test_directory_files_are_read_in_name_order(self, tmp_path):
        (tmp_path / "b.yaml").write_text("query:\n  second:\n    rows: []\n")
        (tmp_path / "a.yml").write_text("query:\n  first:\n    rows: []\n")
        (tmp_path / "ignored.txt").write_text("not yaml: [")

        document, diags = load_document(tmp_path)

        assert not diags
        assert document.base_dir == tmp_path
        blocks, _, _ = document.partial_content(BLOCK_SCHEMA)
        assert [b.labels[0] for b in blocks] == ["first", "second"]
        assert len(document.files) == 2

    def test_single_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG)

        document, diags = load_document(path)

        assert not diags
        assert document.base_dir == tmp_path
        assert str(path) in document.files

    def test_missing_path(self, tmp_path):
        _, diags = load_document(tmp_path / "nothing")
        assert diags.has_errors()
        assert diags[0].summary == "Configuration not found"

    def test_empty_directory_warns(self, tmp_path):
        _, diags = load_document(tmp_path)
        assert not diags.has_errors()
        assert diags[0].summary == "Empty configuration"

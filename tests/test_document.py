import io
import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from lxml import etree

from xml_pipeline import (
    Document,
    InvalidExpression,
    MalformedDocument,
    NamespaceContext,
    NodeNotFound,
    ResourceNotFound,
)
from xml_pipeline.document import XML_DECLARATION

SAMPLE = '<r b="2" a="1"><x>t</x><x>u</x><!-- c --></r>'


def test_query_with_registered_prefix():
    doc = Document('<r xmlns:x="urn:x"><x:a>1</x:a></r>').with_namespace("x", "urn:x")
    assert doc.query("/r/x:a/text()") == ["1"]


def test_unbound_prefix_is_invalid_expression():
    doc = Document('<r xmlns:x="urn:x"><x:a>1</x:a></r>')
    with pytest.raises(InvalidExpression):
        doc.query("/r/zz:a")


def test_syntax_error_leaves_document_usable():
    doc = Document(SAMPLE)
    with pytest.raises(InvalidExpression) as excinfo:
        doc.query("/r/[")
    assert excinfo.value.expression == "/r/["
    assert doc.query("/r/@a") == ["1"]


def test_standard_prefixes_need_no_registration():
    doc = Document('<svg:svg xmlns:svg="http://www.w3.org/2000/svg"><svg:g/></svg:svg>')
    assert len(doc.nodes("/svg:svg/svg:g")) == 1


def test_malformed_input():
    with pytest.raises(MalformedDocument):
        Document("<r><a></r>")


def test_empty_input():
    with pytest.raises(MalformedDocument):
        Document("   ")
    with pytest.raises(MalformedDocument):
        Document(b"")


def test_malformed_is_value_error():
    with pytest.raises(ValueError):
        Document("not xml")


def test_render_round_trip():
    doc = Document(SAMPLE)
    text = doc.render()
    assert text.startswith(XML_DECLARATION)
    assert 'b="2" a="1"' in text
    assert Document(text).render() == text


def test_render_keeps_doctype():
    doc = Document('<!DOCTYPE r SYSTEM "r.dtd"><r/>')
    assert '<!DOCTYPE r SYSTEM "r.dtd">' in doc.render()


def test_empty_result():
    assert Document(SAMPLE).query("/r/missing") == []


def test_text_attribute_and_comment_matches():
    doc = Document(SAMPLE)
    assert doc.query("/r/x/text()") == ["t", "u"]
    assert doc.query("/r/@b") == ["2"]
    assert doc.query("/r/comment()") == [" c "]


def test_scalar_results():
    doc = Document(SAMPLE)
    assert doc.query("count(/r/x)") == ["2"]
    assert doc.query("1 div 2") == ["0.5"]
    assert doc.query("boolean(/r/x)") == ["true"]
    assert doc.query("string(/r/x)") == ["t"]


def test_nodes_are_leaf_documents():
    doc = Document(SAMPLE)
    first = doc.nodes("/r/x")[0]
    assert first.leaf
    assert first.render().strip() == "<x>t</x>"
    assert first.xpath("text()") == ["t"]
    assert first.xpath("/r/@a") == ["1"]


def test_leaf_documents_share_context():
    doc = Document('<r xmlns:x="urn:x"><x:a><x:b>1</x:b></x:a></r>').with_namespace("x", "urn:x")
    leaf = doc.nodes("/r/x:a")[0]
    assert leaf.context == doc.context
    assert leaf.xpath("x:b/text()") == ["1"]


def test_xpath_rejects_elements():
    with pytest.raises(InvalidExpression):
        Document(SAMPLE).xpath("/r/x")


def test_nodes_rejects_text():
    with pytest.raises(InvalidExpression):
        Document(SAMPLE).nodes("/r/x/text()")


def test_index_out_of_bounds():
    matches = Document(SAMPLE).query("/r/missing")
    with pytest.raises(NodeNotFound) as excinfo:
        matches[0]
    assert "/r/missing" in str(excinfo.value)
    assert "size=0" in str(excinfo.value)
    with pytest.raises(IndexError):
        matches[0]


def test_matches_slicing_and_iteration():
    matches = Document(SAMPLE).query("/r/x/text()")
    assert matches[-1] == "u"
    assert matches[0:1] == ["t"]
    assert list(matches) == ["t", "u"]


def test_with_namespace_does_not_touch_original():
    doc = Document("<r/>")
    other = doc.with_namespace("x", "urn:x")
    assert "x" not in doc.context
    assert other.context.lookup_uri("x") == "urn:x"
    assert other.inner() is doc.inner()


def test_with_merged_context():
    doc = Document('<r xmlns:x="urn:x"><x:a/></r>')
    merged = doc.with_merged_context(NamespaceContext().register("x", "urn:x"))
    assert len(merged.nodes("/r/x:a")) == 1
    from_element = doc.with_merged_context(doc.inner())
    assert len(from_element.nodes("/r/x:a")) == 1


def test_extension_function():
    doc = Document("<r><a>hi</a></r>").with_function(
        "shout", lambda context, value: str(value).upper()
    )
    assert doc.query("shout(string(/r/a))") == ["HI"]


def test_namespaced_extension_function():
    doc = (
        Document("<r/>")
        .with_function("twice", lambda context, value: value * 2, namespace="urn:f")
        .with_namespace("f", "urn:f")
    )
    assert doc.query("f:twice(2)") == ["4"]


def test_unknown_function_is_invalid_expression():
    with pytest.raises(InvalidExpression):
        Document("<r/>").query("nosuchfunction()")


def test_from_path(tmp_path):
    path = tmp_path / "doc.xml"
    path.write_text("<r><a>1</a></r>", encoding="utf-8")
    assert Document.from_path(path).xpath("/r/a/text()") == ["1"]
    assert Document(path).xpath("/r/a/text()") == ["1"]


def test_missing_path(tmp_path):
    with pytest.raises(ResourceNotFound):
        Document.from_path(tmp_path / "absent.xml")


def test_from_stream():
    doc = Document.from_stream(io.BytesIO(b"<r><a>1</a></r>"))
    assert doc.xpath("/r/a/text()") == ["1"]
    assert Document(io.StringIO("<r>2</r>")).xpath("/r/text()") == ["2"]


def test_declared_encoding_is_honoured():
    doc = Document('<?xml version="1.0" encoding="ISO-8859-1"?><t>ä</t>')
    assert doc.xpath("/t/text()") == ["ä"]


def test_lxml_inputs():
    root = etree.fromstring("<r><a>1</a></r>")
    whole = Document(root)
    part = Document(root[0])
    assert not whole.leaf
    assert part.leaf
    assert not part.render().startswith("<?xml")
    assert Document(root.getroottree()).render() == whole.render()


def test_equality_by_rendering():
    assert Document("<r><a/></r>") == Document("<r><a/></r>")
    assert Document("<r/>") != Document("<s/>")
    assert str(Document("<r/>")) == Document("<r/>").render()


def test_deep_copy_is_independent():
    doc = Document("<r><a/></r>")
    copy = doc.deep_copy()
    copy.append(etree.Element("z"))
    assert doc.query("/r/z") == []
    assert copy.find("a") is not None


def test_unsupported_source():
    with pytest.raises(TypeError):
        Document(42)

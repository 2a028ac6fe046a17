"""Tests for the text-vs-image classifier."""

from menuscan.classifier import classify_pdf, classify_text, extract_pdf_text

from conftest import MENU_TEXT, make_pdf


def test_empty_text_is_image_based():
    result = classify_text("")
    assert result.is_image_based
    assert result.confidence == 0.0
    assert result.char_count == 0
    assert result.word_count == 0


def test_menu_text_is_text_based():
    result = classify_text(MENU_TEXT, page_count=1)
    assert result.has_text
    assert result.confidence >= 0.75
    assert result.word_count > 10


def test_short_fragment_still_counts_as_text():
    # A logo caption is enough to avoid image mode.
    result = classify_text("Luigi's")
    assert result.has_text
    assert result.confidence <= 0.3


def test_sparse_text_per_page_lowers_confidence():
    dense = classify_text(MENU_TEXT, page_count=1)
    sparse = classify_text(MENU_TEXT, page_count=100)
    assert sparse.confidence < dense.confidence


def test_classify_pdf_with_text(tmp_path):
    path = tmp_path / "menu.pdf"
    path.write_bytes(make_pdf(MENU_TEXT))

    text, pages = extract_pdf_text(path)
    assert pages == 1
    assert "Caesar" in text

    assert classify_pdf(path).has_text


def test_classify_pdf_without_text(tmp_path):
    import fitz

    doc = fitz.open()
    doc.new_page()
    path = tmp_path / "scan.pdf"
    path.write_bytes(doc.tobytes())
    doc.close()

    assert classify_pdf(path).is_image_based


def test_unreadable_pdf_is_image_based(tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"not a pdf at all")

    assert extract_pdf_text(path) == ("", 0)
    assert classify_pdf(path).is_image_based

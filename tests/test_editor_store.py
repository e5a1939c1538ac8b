"""
Tests for the in-memory document store and document model.
"""
from editor.models import Document, extract_title
from editor.store import DocumentStore


def test_new_document_has_one_empty_page():
    doc = Document(title="A")
    assert doc.total_pages == 1
    assert doc.pages[0].page_number == 1
    assert doc.pages[0].content == ""


def test_create_document_becomes_current_and_first():
    store = DocumentStore.with_blank_document()
    first = store.current_document
    second = store.create_document("Hai", "nội dung")

    assert store.current_document_id == second.id
    assert store.documents[0] is second
    assert store.documents[1] is first


def test_select_and_delete_document():
    store = DocumentStore()
    a = store.create_document("A")
    b = store.create_document("B")
    store.editing = True

    assert store.select_document(a.id) is a
    assert store.editing is False
    assert store.select_document("missing") is None

    store.delete_document(a.id)
    assert store.current_document is None
    assert store.documents == [b]
    store.delete_document("missing")


def test_search_matches_titles_and_content_case_insensitively():
    store = DocumentStore()
    store.create_document("Lịch Họp", "")
    store.create_document("Ghi chú", "Họp với khách hàng")
    store.create_document("Khác", "")

    results = store.search("HỌP")

    assert {d.title for d in results} == {"Lịch Họp", "Ghi chú"}
    assert store.search_query == "HỌP"
    assert store.search("   ") == []


def test_page_operations():
    store = DocumentStore.with_blank_document()

    store.append_to_current_page("một")
    store.append_to_current_page("hai")
    assert store.get_current_page().content == "một\nhai"

    page = store.add_page("trang hai", title="Tiêu đề")
    assert page.page_number == 2
    assert store.current_document.current_page == 2
    assert store.get_current_page().title == "Tiêu đề"

    assert store.next_page() is False
    assert store.prev_page() is True
    assert store.prev_page() is False


def test_delete_only_page_is_refused():
    store = DocumentStore.with_blank_document()
    assert store.delete_current_page() is None
    assert DocumentStore().delete_current_page() is None


def test_delete_last_page_moves_to_new_last():
    store = DocumentStore.with_blank_document()
    store.add_page("hai")

    assert store.delete_current_page() == 2
    assert store.current_document.current_page == 1
    assert store.current_document.total_pages == 1


def test_mutations_without_document_return_none():
    store = DocumentStore()
    assert store.append_to_current_page("x") is None
    assert store.replace_current_page("x") is None
    assert store.set_page_title("x") is None
    assert store.set_document_title("x") is None
    assert store.add_page() is None
    assert store.next_page() is False


def test_extract_title():
    assert extract_title("") == ""
    assert extract_title("Tiêu đề\nnội dung") == "Tiêu đề"
    long_line = " ".join(["từ"] * 60)
    assert extract_title(long_line) == " ".join(["từ"] * 8) + "..."

"""
Tests for the action dispatcher and the local fallback interpreter.
"""
import pytest

from editor.store import DocumentStore
from voice_loop.dispatcher import ActionDispatcher
from voice_loop.fallback import FallbackIntent, FallbackInterpreter, extract_search_term
from voice_loop.protocol import ActionType, ParsedAction


@pytest.fixture
def store():
    return DocumentStore.with_blank_document()


@pytest.fixture
def dispatcher(store):
    return ActionDispatcher(store)


def _dispatch(dispatcher, action_type, content="", answer=""):
    return dispatcher.dispatch(ParsedAction(action_type, content, answer))


# --- dispatcher ---


def test_add_to_page_appends_and_uses_canned_message(dispatcher, store):
    _dispatch(dispatcher, "add_to_page", "Dòng một")
    result = _dispatch(dispatcher, "add_to_page", "Dòng hai")

    assert store.get_current_page().content == "Dòng một\nDòng hai"
    assert result.applied
    assert result.speech == "Đã thêm nội dung vào trang 1."
    assert not result.used_agent_answer


def test_agent_answer_wins_over_canned_message(dispatcher):
    result = _dispatch(dispatcher, "add_to_page", "Xin chào", "Tôi đã ghi lại lời chào.")
    assert result.speech == "Tôi đã ghi lại lời chào."
    assert result.used_agent_answer


def test_add_to_page_with_empty_content_skips_mutation(dispatcher, store):
    result = _dispatch(dispatcher, "add_to_page", "")
    assert not result.applied
    assert store.get_current_page().content == ""


def test_rewrite_page(dispatcher, store):
    store.append_to_current_page("cũ")
    result = _dispatch(dispatcher, "rewrite_page", "mới")
    assert store.get_current_page().content == "mới"
    assert result.speech == "Đã viết lại nội dung trang 1."


def test_create_doc_titles_from_first_line(dispatcher, store):
    result = _dispatch(dispatcher, "create_doc", "Kế hoạch tuần\nThứ hai: họp")

    doc = store.current_document
    assert doc.title == "Kế hoạch tuần"
    assert doc.pages[0].content == "Kế hoạch tuần\nThứ hai: họp"
    assert len(store.documents) == 2
    assert result.speech == 'Đã tạo tài liệu mới: "Kế hoạch tuần"'


def test_create_doc_without_content_uses_default_title(dispatcher, store):
    _dispatch(dispatcher, "create_doc")
    assert store.current_document.title == "Tài liệu mới"


def test_titles(dispatcher, store):
    assert _dispatch(dispatcher, "set_title_doc", "Báo cáo").speech == 'Đã đặt tiêu đề tài liệu: "Báo cáo"'
    assert store.current_document.title == "Báo cáo"
    assert _dispatch(dispatcher, "read_title_doc").speech == 'Tiêu đề tài liệu là: "Báo cáo"'

    assert _dispatch(dispatcher, "read_title_page").speech == "Trang 1 chưa có tiêu đề."
    _dispatch(dispatcher, "set_title_page", "Mở đầu")
    assert _dispatch(dispatcher, "read_title_page").speech == 'Tiêu đề trang 1 là: "Mở đầu"'


def test_page_navigation(dispatcher, store):
    assert _dispatch(dispatcher, "add_page").speech == "Đã thêm trang 2."
    assert store.current_document.current_page == 2

    result = _dispatch(dispatcher, "next_page")
    assert not result.applied
    assert result.speech == "Đây là trang cuối cùng."

    assert _dispatch(dispatcher, "prev_page").speech == "Đã chuyển về trang 1."
    assert _dispatch(dispatcher, "prev_page").speech == "Đây là trang đầu tiên."
    assert _dispatch(dispatcher, "next_page").speech == "Đã chuyển đến trang 2."


def test_read_page(dispatcher, store):
    assert _dispatch(dispatcher, "read_page").speech == "Trang 1 hiện tại đang trống."

    store.append_to_current_page("Nội dung")
    assert _dispatch(dispatcher, "read_page").speech == "Đây là nội dung trang 1: Nội dung"

    store.set_page_title("Mở đầu")
    assert _dispatch(dispatcher, "read_page").speech == 'Đây là nội dung trang 1 "Mở đầu": Nội dung'


def test_delete_page(dispatcher, store):
    result = _dispatch(dispatcher, "delete_page")
    assert not result.applied
    assert result.speech == "Không thể xóa trang duy nhất trong tài liệu."

    store.add_page("hai")
    store.add_page("ba")
    store.prev_page()
    result = _dispatch(dispatcher, "delete_page")

    assert result.speech == "Đã xóa trang 2."
    doc = store.current_document
    assert [p.page_number for p in doc.pages] == [1, 2]
    assert doc.pages[1].content == "ba"


def test_remove_and_save_doc(dispatcher, store):
    title = store.current_document.title
    store.editing = True
    assert _dispatch(dispatcher, "save_doc").speech == f'Đã lưu tài liệu: "{title}"'
    assert store.editing is False

    assert _dispatch(dispatcher, "remove_doc").speech == f'Đã xóa tài liệu: "{title}"'
    assert store.current_document is None
    assert store.documents == []


@pytest.mark.parametrize("action", [
    "add_to_page", "rewrite_page", "set_title_doc", "read_title_doc", "set_title_page",
    "read_title_page", "add_page", "next_page", "prev_page", "read_page", "delete_page",
    "remove_doc", "save_doc",
])
def test_actions_without_document_never_raise(action):
    dispatcher = ActionDispatcher(DocumentStore())
    result = _dispatch(dispatcher, action, "x")
    assert not result.applied
    assert result.speech.startswith("Không có tài liệu nào")


def test_reply_user_speaks_answer_without_mutation(dispatcher, store):
    result = _dispatch(dispatcher, "reply_user", "", "Tôi ở đây.")
    assert result.action is ActionType.REPLY_USER
    assert result.speech == "Tôi ở đây."
    assert store.get_current_page().content == ""


def test_unknown_action_ignores_agent_answer(dispatcher, store):
    result = _dispatch(dispatcher, "Fly_Away", "x", "Đã bay!")
    assert result.action is ActionType.UNRECOGNIZED
    assert result.speech == "Không hiểu lệnh: Fly_Away."
    assert not result.applied
    assert store.get_current_page().content == ""


# --- fallback ---


@pytest.fixture
def fallback(store):
    return FallbackInterpreter(store)


@pytest.mark.parametrize("utterance,term", [
    ("tìm kiếm về lịch họp", "lịch họp"),
    ("Tìm kiếm báo cáo", "báo cáo"),
    ("tìm về hợp đồng", "hợp đồng"),
    ("tìm ghi chú", "ghi chú"),
    ("tìm", ""),
])
def test_extract_search_term(utterance, term):
    assert extract_search_term(utterance) == term


def test_fallback_create(fallback, store):
    result = fallback.interpret("Tạo tài liệu mới")
    assert result.intent == FallbackIntent.CREATE
    assert store.editing
    assert len(store.documents) == 2


def test_fallback_search(fallback, store):
    assert fallback.interpret("tìm kiếm lịch họp").speech == 'Đang tìm kiếm: "lịch họp"'
    assert store.search_query == "lịch họp"
    assert fallback.interpret("tìm").speech == "Vui lòng nói rõ từ khóa bạn muốn tìm kiếm."


def test_fallback_edit(fallback, store):
    result = fallback.interpret("chỉnh sửa tài liệu")
    assert result.intent == FallbackIntent.EDIT
    assert store.editing


def test_fallback_delete_only_asks_for_confirmation(fallback, store):
    result = fallback.interpret("xóa tài liệu này")
    assert result.intent == FallbackIntent.DELETE
    assert "xác nhận" in result.speech
    assert len(store.documents) == 1


def test_fallback_read(fallback, store):
    assert "đang trống" in fallback.interpret("đọc tài liệu").speech
    store.append_to_current_page("Chào")
    assert fallback.interpret("xem trang").speech.endswith(": Chào")


def test_fallback_appends_everything_else(fallback, store):
    result = fallback.interpret("  hôm nay trời đẹp  ")
    assert result.intent == FallbackIntent.APPEND
    assert store.get_current_page().content == "hôm nay trời đẹp"
    assert result.speech == 'Đã thêm nội dung vào trang 1: "hôm nay trời đẹp"'


def test_fallback_without_document_is_unhandled():
    result = FallbackInterpreter(DocumentStore()).interpret("hôm nay trời đẹp")
    assert result.intent == FallbackIntent.UNHANDLED
    assert result.speech.startswith("Tôi đã nhận được lệnh của bạn.")

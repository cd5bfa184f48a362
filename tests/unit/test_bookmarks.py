import json
import pytest

from product_research.storage.bookmarks import BookmarkStore, JsonFileBookmarkStore, MemoryBookmarkStore

SHOP = "https://shop-one.com/mouse-x200"
STORE = "https://store-two.de/produkt/x200"


@pytest.fixture(params=["memory", "file"])
def bookmarks(request, tmp_path):
    if request.param == "memory":
        return MemoryBookmarkStore()
    return JsonFileBookmarkStore(tmp_path / "bookmarks.json")


@pytest.mark.asyncio
async def test_add_keeps_order_and_ignores_duplicates(bookmarks):
    await bookmarks.add("42", SHOP)
    await bookmarks.add("42", STORE)
    urls = await bookmarks.add("42", SHOP)

    assert urls == [SHOP, STORE]
    assert await bookmarks.for_subject("42") == [SHOP, STORE]
    assert await bookmarks.for_subject("7") == []


@pytest.mark.asyncio
async def test_remove(bookmarks):
    await bookmarks.add("42", SHOP)
    await bookmarks.add("42", STORE)

    assert await bookmarks.remove("42", SHOP) == [STORE]
    assert await bookmarks.remove("42", SHOP) == [STORE]
    assert await bookmarks.remove("42", STORE) == []
    assert await bookmarks.for_subject("42") == []


@pytest.mark.asyncio
async def test_file_store_persists_between_instances(tmp_path):
    path = tmp_path / "bookmarks.json"
    await JsonFileBookmarkStore(path).add("42", SHOP)

    assert await JsonFileBookmarkStore(path).for_subject("42") == [SHOP]
    assert json.loads(path.read_text(encoding="utf-8")) == {"42": [SHOP]}


@pytest.mark.asyncio
async def test_unreadable_file_starts_empty(tmp_path):
    path = tmp_path / "bookmarks.json"
    path.write_text("{not json", encoding="utf-8")

    store = JsonFileBookmarkStore(path)

    assert await store.for_subject("42") == []
    assert await store.add("42", SHOP) == [SHOP]


def test_store_interface_is_abstract():
    with pytest.raises(TypeError):
        BookmarkStore()

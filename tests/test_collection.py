"""Collector: dedup-safe intake for keyword search and URL lists."""

import os
import logging

import requests

from conftest import FakeSession, FakeSearch, image_bytes
from mudozzal.collection.base_collector import compute_hash, extension_from_url
from mudozzal.collection.image_search import SearchResult
from mudozzal.collection.pipeline import CollectionPipeline, main
from mudozzal.collection.url_collector import read_url_file


def test_extension_from_url():
    assert extension_from_url("https://x.com/a/b.PNG") == ".png"
    assert extension_from_url("https://x.com/a/b.webp?w=300") == ".webp"
    assert extension_from_url("https://x.com/a/b.php") == ".jpg"
    assert extension_from_url("https://x.com/a/") == ".jpg"


def test_identical_bytes_from_two_urls_yield_one_entry(config, store, caplog):
    data = image_bytes("same")
    session = FakeSession({
        "https://a.com/one.jpg": data,
        "https://b.com/two.png": data,
    })
    pipeline = CollectionPipeline(config, session=session)

    with caplog.at_level(logging.INFO):
        stats = pipeline.run_url_list(["https://a.com/one.jpg", "https://b.com/two.png"])

    manifest = store.load_manifest()
    assert stats.collected == 1
    assert stats.duplicates == 1
    assert len(manifest) == 1
    assert manifest.hashes == [compute_hash(data)]
    assert os.listdir(store.images_dir) == [manifest.images[0].filename]
    assert "Duplicate skipped: https://b.com/two.png" in caplog.text


def test_url_entries_are_manual_and_pending(config, store):
    session = FakeSession({"https://a.com/x.gif": image_bytes(1, size=10)})
    CollectionPipeline(config, session=session).run_url_list(["https://a.com/x.gif"])

    entry = store.load_manifest().images[0]
    # URL mode has no size filter.
    assert entry.keyword == "manual"
    assert entry.filename.startswith("mudo_") and entry.filename.endswith(".gif")
    assert entry.analyzed is False
    assert entry.status == "pending"


def test_url_failures_do_not_abort_run(config, store):
    session = FakeSession({
        "https://a.com/404.jpg": (404, b""),
        "https://a.com/timeout.jpg": requests.Timeout("read timed out"),
        "https://a.com/ok.jpg": image_bytes("ok"),
    })
    stats = CollectionPipeline(config, session=session).run_url_list([
        "https://a.com/404.jpg", "https://a.com/timeout.jpg",
        "https://a.com/missing.jpg", "https://a.com/ok.jpg",
    ])
    assert stats.failed == 3
    assert stats.collected == 1
    assert len(store.load_manifest()) == 1


def test_rerun_does_not_duplicate(config, store):
    session = FakeSession({"https://a.com/1.jpg": image_bytes(1)})
    pipeline = CollectionPipeline(config, session=session)
    pipeline.run_url_list(["https://a.com/1.jpg"])
    stats = pipeline.run_url_list(["https://a.com/1.jpg"])
    assert stats.collected == 0
    assert len(store.load_manifest()) == 1


def test_keyword_search_filters_size_and_dedups(config, store):
    big = b"\x00" * (config["collection"]["max_bytes"] + 1)
    search = FakeSearch({
        "무야호 짤": [
            SearchResult(url="https://a.com/good.jpg", title="무야호", source="a.com",
                         width=500, height=400),
            SearchResult(url="https://a.com/tiny.png"),
            SearchResult(url="https://a.com/huge.png"),
            SearchResult(url=""),
        ],
        "무한도전 짤": [
            SearchResult(url="https://b.com/copy.jpg"),
            SearchResult(url="https://b.com/broken.jpg"),
        ],
    })
    session = FakeSession({
        "https://a.com/good.jpg": image_bytes("good"),
        "https://a.com/tiny.png": b"\x89PNG" + b"\x00" * 100,
        "https://a.com/huge.png": big,
        "https://b.com/copy.jpg": image_bytes("good"),
        "https://b.com/broken.jpg": (500, b""),
    })

    stats = CollectionPipeline(config, session=session).run_keyword_search(
        search=search, keywords=["무야호 짤", "무한도전 짤"])

    manifest = store.load_manifest()
    assert search.queries == ["무야호 짤", "무한도전 짤"]
    assert stats.collected == 1
    assert stats.filtered == 2
    assert stats.duplicates == 1
    assert stats.failed == 1
    assert len(manifest) == 1

    entry = manifest.images[0]
    assert entry.keyword == "무야호 짤"
    assert entry.source_title == "무야호"
    assert entry.source_site == "a.com"
    assert (entry.width, entry.height) == (500, 400)


def test_failed_search_moves_to_next_keyword(config, store):
    search = FakeSearch({"ok": ["https://a.com/1.jpg"]}, failing=["bad"])
    session = FakeSession({"https://a.com/1.jpg": image_bytes(1)})

    stats = CollectionPipeline(config, session=session).run_keyword_search(
        search=search, keywords=["bad", "ok"])

    assert search.queries == ["bad", "ok"]
    assert stats.collected == 1


def test_manifest_saved_after_each_keyword(config, store):
    class StopAfterFirst(FakeSearch):
        def search(self, keyword):
            if keyword == "second":
                raise KeyboardInterrupt
            return super().search(keyword)

    search = StopAfterFirst({"first": ["https://a.com/1.jpg"]})
    session = FakeSession({"https://a.com/1.jpg": image_bytes(1)})
    pipeline = CollectionPipeline(config, session=session)

    try:
        pipeline.run_keyword_search(search=search, keywords=["first", "second"])
    except KeyboardInterrupt:
        pass

    assert len(store.load_manifest()) == 1


def test_read_url_file_skips_comments(tmp_path):
    path = tmp_path / "urls.txt"
    path.write_text("# 무도 짤\nhttps://a.com/1.jpg\n\n  https://a.com/2.jpg  \n", encoding="utf-8")
    assert read_url_file(str(path)) == ["https://a.com/1.jpg", "https://a.com/2.jpg"]


def test_cli_keyword_mode_requires_serpapi_key(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SERPAPI_KEY", raising=False)
    assert main(["keyword-search"]) == 1


def test_cli_missing_url_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["url-list", "nope.txt"]) == 1


def test_cli_without_mode_prints_help(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main([]) == 0
    assert "keyword-search" in capsys.readouterr().out

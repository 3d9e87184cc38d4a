from __future__ import annotations

import asyncio
import threading
from collections import Counter
from pathlib import Path

import pytest

from importtrace.config import TraceConfig
from importtrace.crawl import Crawler
from importtrace.errors import CrawlFailed, ResolutionFailure
from importtrace.graph import assemble
from importtrace.lineup import SourceFile


def _project(root: Path, graph: dict[str, str]) -> dict[str, str]:
    """Write one ``<name>.js`` per entry; its text is ``@name dep dep ...``."""
    paths = {}
    for name, deps in graph.items():
        path = root / f"{name}.js"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"@{Path(name).name} {deps}".strip(), encoding="utf-8")
        paths[name] = str(path.resolve())
    return paths


class FakeCollaborators:
    """Whitespace-token extractor and name-based resolver."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.extracted: Counter = Counter()
        self.texts: list[str] = []
        self.resolved: Counter = Counter()
        self._lock = threading.Lock()

    def extract(self, text: str) -> list[str]:
        tokens = text.split()
        with self._lock:
            self.texts.append(text)
            self.extracted[tokens[0][1:]] += 1
        return tokens[1:]

    def resolve(self, identifier: str, base_dir: str) -> str:
        with self._lock:
            self.resolved[(identifier, base_dir)] += 1
        if identifier.startswith("missing"):
            raise ResolutionFailure(identifier, base_dir)
        if identifier.startswith("vendor/"):
            return str((self.root / "node_modules" / f"{identifier[len('vendor/'):]}.js").resolve())
        return str((Path(base_dir) / f"{identifier}.js").resolve())


def _crawl(fake: FakeCollaborators, entries, **options):
    options.setdefault("compile_module_syntax", False)
    crawler = Crawler(TraceConfig(**options), extract=fake.extract, resolve=fake.resolve)
    return asyncio.run(crawler.crawl(entries))


def test_each_module_is_processed_once(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "b c", "b": "d", "c": "d", "d": ""})
    fake = FakeCollaborators(tmp_path)

    result = _crawl(fake, [paths["a"]])

    assert fake.extracted == {"a": 1, "b": 1, "c": 1, "d": 1}
    assert sorted(edge.subject for edge in result.edges) == sorted(paths.values())
    by_subject = {edge.subject: edge for edge in result.edges}
    assert by_subject[paths["b"]].dependencies == (paths["d"],)
    assert by_subject[paths["c"]].dependencies == (paths["d"],)
    assert by_subject[paths["a"]].parent is None
    assert by_subject[paths["b"]].parent == paths["a"]
    assert result.roots.as_list() == [paths["a"]]
    assert assemble(result.cache, result.roots) == {
        paths["a"]: {
            paths["b"]: {paths["d"]: {}},
            paths["c"]: {paths["d"]: {}},
        }
    }


def test_each_identifier_is_resolved_once(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "x/b y/c", "x/b": "../d", "y/c": "../d", "d": ""})
    fake = FakeCollaborators(tmp_path)

    result = _crawl(fake, [paths["a"]])

    root = str(Path(paths["a"]).parent)
    assert fake.resolved == {
        ("x/b", root): 1,
        ("y/c", root): 1,
        ("../d", str(Path(paths["x/b"]).parent)): 1,
        ("../d", str(Path(paths["y/c"]).parent)): 1,
    }
    assert fake.extracted["d"] == 1
    assert result.cache.get(paths["x/b"]) == [paths["d"]]


def test_shared_dependency_across_entries(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "c", "d": "c", "c": ""})
    fake = FakeCollaborators(tmp_path)

    result = _crawl(fake, [paths["a"], paths["d"]])

    assert fake.extracted["c"] == 1
    assert result.roots.as_list() == [paths["a"], paths["d"]]
    tree = assemble(result.cache, result.roots)
    assert tree[paths["a"]] == {paths["c"]: {}}
    assert tree[paths["d"]] == {paths["c"]: {}}


def test_dependency_order_follows_source_order(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "z y x y", "x": "", "y": "", "z": ""})
    fake = FakeCollaborators(tmp_path)

    result = _crawl(fake, [paths["a"]])

    assert result.cache.get(paths["a"]) == [paths["z"], paths["y"], paths["x"]]


def test_resolution_failure_drops_only_that_identifier(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "missing-thing b", "b": ""})
    fake = FakeCollaborators(tmp_path)

    result = _crawl(fake, [paths["a"]])

    assert result.cache.get(paths["a"]) == [paths["b"]]
    assert fake.extracted["b"] == 1
    assert result.issues == []


def test_strict_resolution_reports_failures(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "missing-thing b", "b": ""})
    fake = FakeCollaborators(tmp_path)

    result = _crawl(fake, [paths["a"]], strict_resolution=True)

    assert result.cache.get(paths["a"]) == [paths["b"]]
    assert [(issue.module, issue.kind) for issue in result.issues] == [(paths["a"], "ResolutionFailure")]


def test_vendored_dependencies_are_excluded(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "vendor/lib b", "b": "", "node_modules/lib": ""})
    fake = FakeCollaborators(tmp_path)

    result = _crawl(fake, [paths["a"]])

    assert result.cache.get(paths["a"]) == [paths["b"]]
    assert "lib" not in fake.extracted
    assert not result.cache.contains(paths["node_modules/lib"])


def test_vendored_module_is_crawled_when_reached_directly(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "vendor/lib", "node_modules/lib": ""})
    fake = FakeCollaborators(tmp_path)

    result = _crawl(fake, [paths["a"], paths["node_modules/lib"]])

    assert result.cache.get(paths["a"]) == []
    assert fake.extracted["lib"] == 1
    assert result.roots.as_list() == [paths["a"], paths["node_modules/lib"]]


def test_vendored_dependencies_can_be_followed(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "vendor/lib", "node_modules/lib": ""})
    fake = FakeCollaborators(tmp_path)

    result = _crawl(fake, [paths["a"]], ignore_vendored_dependencies=False)

    assert result.cache.get(paths["a"]) == [paths["node_modules/lib"]]
    assert fake.extracted["lib"] == 1


def test_filters_and_mapper(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "skip-me b c", "b": "", "c": ""})
    fake = FakeCollaborators(tmp_path)
    mapped = []

    def mapper(path: str) -> str:
        mapped.append(path)
        return path

    result = _crawl(
        fake,
        [paths["a"]],
        pre_filter=lambda identifier: not identifier.startswith("skip"),
        post_filter=lambda path: not path.endswith("c.js"),
        identifier_mapper=mapper,
    )

    assert result.cache.get(paths["a"]) == [paths["b"]]
    assert mapped == [paths["b"]]


def test_empty_pipeline_hands_raw_text_to_extractor(tmp_path) -> None:
    entry = tmp_path / "a.js"
    raw = "@a \t b\r\n"
    entry.write_bytes(raw.encode("utf-8"))
    _project(tmp_path, {"b": ""})
    fake = FakeCollaborators(tmp_path)

    _crawl(fake, [entry])

    assert fake.texts[0] == raw


def test_entry_contents_are_used_when_given(tmp_path) -> None:
    _project(tmp_path, {"b": ""})
    fake = FakeCollaborators(tmp_path)
    entry = SourceFile(path=str(tmp_path / "virtual.js"), contents=b"@virtual b")

    result = _crawl(fake, [entry])

    assert result.roots.as_list() == [entry.path]
    assert result.cache.get(entry.path) == [str((tmp_path / "b.js").resolve())]


def test_unreadable_module_abandons_only_its_branch(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "ghost b", "b": ""})
    fake = FakeCollaborators(tmp_path)
    ghost = str((tmp_path / "ghost.js").resolve())

    result = _crawl(fake, [paths["a"]])

    assert [(issue.module, issue.kind, issue.parent) for issue in result.issues] == [
        (ghost, "ContentLoadError", paths["a"])
    ]
    assert result.abandoned == {ghost}
    assert all(edge.subject != ghost for edge in result.edges)
    assert assemble(result.cache, result.roots, result.abandoned) == {paths["a"]: {paths["b"]: {}}}


def test_transform_error_abandons_only_its_branch(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "b c", "b": "d", "c": "", "d": ""})
    fake = FakeCollaborators(tmp_path)

    def reject_b(text, options):
        if text.startswith("@b"):
            raise ValueError("cannot transform b")
        return text

    result = _crawl(fake, [paths["a"]], transform_stages=[reject_b])

    assert [(issue.module, issue.kind) for issue in result.issues] == [(paths["b"], "TransformError")]
    assert "reject_b" in result.issues[0].message
    assert fake.extracted == {"a": 1, "c": 1}
    assert assemble(result.cache, result.roots, result.abandoned) == {paths["a"]: {paths["c"]: {}}}


def test_crawl_fails_when_no_entry_succeeds(tmp_path) -> None:
    fake = FakeCollaborators(tmp_path)

    with pytest.raises(CrawlFailed) as excinfo:
        _crawl(fake, [tmp_path / "nope.js"])

    assert excinfo.value.issues[0].kind == "ContentLoadError"


def test_no_entries_is_an_empty_crawl(tmp_path) -> None:
    result = _crawl(FakeCollaborators(tmp_path), [])

    assert result.roots.as_list() == []
    assert len(result.cache) == 0


def test_entry_reached_as_dependency_stays_root(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "b", "b": ""})
    fake = FakeCollaborators(tmp_path)

    result = _crawl(fake, [paths["a"], paths["b"], paths["a"]])

    assert fake.extracted == {"a": 1, "b": 1}
    assert len(result.edges) == 2
    assert result.roots.as_list() == [paths["a"], paths["b"]]
    assert assemble(result.cache, result.roots) == {paths["a"]: {paths["b"]: {}}, paths["b"]: {}}


def test_import_cycle_terminates(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "b", "b": "a"})
    fake = FakeCollaborators(tmp_path)

    result = _crawl(fake, [paths["a"]])

    assert fake.extracted == {"a": 1, "b": 1}
    assert result.cache.as_dict() == {paths["a"]: [paths["b"]], paths["b"]: [paths["a"]]}


def test_concurrent_referrers_share_one_pass(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "shared", "c": "shared", "e": "shared", "shared": ""})
    fake = FakeCollaborators(tmp_path)
    transformed = Counter()

    async def slow(text, options):
        transformed[text.split()[0]] += 1
        await asyncio.sleep(0.01)
        return text

    result = _crawl(fake, [paths["a"], paths["c"], paths["e"]], transform_stages=[slow], max_concurrency=2)

    assert transformed["@shared"] == 1
    assert fake.extracted["shared"] == 1
    assert [edge.subject for edge in result.edges].count(paths["shared"]) == 1


def test_collaborator_errors_abort_the_crawl(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "b", "b": ""})

    def broken_extract(text: str) -> list[str]:
        raise RuntimeError("extractor exploded")

    crawler = Crawler(
        TraceConfig(compile_module_syntax=False),
        extract=broken_extract,
        resolve=FakeCollaborators(tmp_path).resolve,
    )

    with pytest.raises(RuntimeError, match="extractor exploded"):
        asyncio.run(crawler.crawl([paths["a"]]))


def test_listeners_observe_edges_and_issues(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "ghost b", "b": ""})
    fake = FakeCollaborators(tmp_path)
    edges, issues = [], []

    crawler = Crawler(
        TraceConfig(compile_module_syntax=False),
        extract=fake.extract,
        resolve=fake.resolve,
        on_edge=edges.append,
        on_error=issues.append,
    )
    result = asyncio.run(crawler.crawl([paths["a"]]))

    assert edges == result.edges
    assert issues == result.issues
    assert len(issues) == 1


def test_extraction_runs_off_the_event_loop_thread(tmp_path) -> None:
    paths = _project(tmp_path, {"a": "b", "b": ""})
    fake = FakeCollaborators(tmp_path)
    threads = set()

    def extract(text: str) -> list[str]:
        threads.add(threading.get_ident())
        return fake.extract(text)

    crawler = Crawler(TraceConfig(compile_module_syntax=False), extract=extract, resolve=fake.resolve)
    result = asyncio.run(crawler.crawl([paths["a"]]))

    assert result.cache.get(paths["a"]) == [paths["b"]]
    assert threads
    assert threading.get_ident() not in threads

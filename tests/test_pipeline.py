import concurrent.futures

from rich.console import Console

from onboarder.config_loader import OnboarderConfig
from onboarder.errors import ErrorType, RemoteAPIError
from onboarder.models import Action
from onboarder.pipeline import Onboarder, RunReport, filter_repositories
from onboarder.state import StateStore
from onboarder.strategies import build_strategy
from onboarder.summary import ErrorSummary

from conftest import FakeDirectory, make_repo


def _config(**runtime):
    runtime.setdefault("rate_limit", 0)
    return OnboarderConfig(
        github={"organization": "acme", "token": "t"},
        harness={"api_key": "k", "account_id": "a", "org_id": "default", "project_id": "platform"},
        defaults={"owner": "platform-team"},
        runtime=runtime,
    )


def _onboarder(config, directory, manifests, catalog, state):
    strategy = build_strategy(
        config.runtime.mode, manifests, catalog, config.defaults,
        org_id=config.harness.org_id, project_id=config.harness.project_id,
    )
    return Onboarder(config, directory, strategy=strategy, state=state, console=Console(record=True, width=160))


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def test_filter_drops_archived():
    repos = [make_repo("a"), make_repo("b", archived=True)]
    assert [r.name for r in filter_repositories(repos)] == ["a"]


def test_filter_include_and_exclude():
    repos = [make_repo("a"), make_repo("b"), make_repo("c")]
    kept = filter_repositories(repos, include=["a", "b"], exclude=["b"])
    assert [r.name for r in kept] == ["a"]


def test_filter_preselected_ignores_include():
    repos = [make_repo("a"), make_repo("b")]
    kept = filter_repositories(repos, include=["a"], exclude=["b"], preselected=True)
    assert [r.name for r in kept] == ["a"]


def test_filter_falls_back_to_full_name():
    repo = make_repo("ignored", name="")
    assert repo.name == ""
    assert repo.full_name == "acme/ignored"

    assert filter_repositories([repo], exclude=["ignored"]) == []
    assert filter_repositories([repo], include=["ignored"]) == [repo]


def test_exit_codes():
    assert RunReport().exit_code == 0
    assert RunReport(interrupted=True).exit_code == 130

    failing = ErrorSummary(total=1)
    assert RunReport(summary=failing).exit_code == 1


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------

def test_api_mode_with_one_existing_entity(manifests, catalog, state):
    catalog.entities.add("billing")
    directory = FakeDirectory([make_repo("billing"), make_repo("web"), make_repo("jobs")])

    report = _onboarder(_config(mode="api"), directory, manifests, catalog, state).run()

    summary = report.summary
    assert summary.count(Action.SKIPPED) == 1
    assert summary.count(Action.CREATED) == 2
    assert summary.total == 0
    assert report.exit_code == 0
    assert {e.identifier for e in catalog.created} == {"web", "jobs"}


def test_failure_sets_exit_code(manifests, catalog, state):
    catalog.create_errors["web"] = RemoteAPIError(500, "Internal Server Error", "boom")
    directory = FakeDirectory([make_repo("billing"), make_repo("web")])

    report = _onboarder(_config(mode="api"), directory, manifests, catalog, state).run()

    assert report.summary.total == 1
    assert report.exit_code == 1


def test_register_without_manifest_is_not_a_failure(manifests, catalog, state):
    directory = FakeDirectory([make_repo("bare")])

    report = _onboarder(_config(mode="register"), directory, manifests, catalog, state).run()

    result = report.summary.results[0]
    assert result.skipped
    assert report.summary.total == 0
    assert report.exit_code == 0


def test_register_rerun_with_fresh_ledger(tmp_path, manifests, catalog, clock):
    manifests.files[("acme/web", "catalog-info.yaml")] = "identifier: web\n"
    directory = FakeDirectory([make_repo("web")])
    config = _config(mode="register")

    first = _onboarder(config, directory, manifests, catalog, StateStore(tmp_path / "one.json", clock=clock)).run()
    second = _onboarder(config, directory, manifests, catalog, StateStore(tmp_path / "two.json", clock=clock)).run()

    assert first.summary.results[0].action == Action.REGISTERED
    rerun = second.summary.results[0]
    assert rerun.skipped
    assert rerun.notice.type == ErrorType.ENTITY_ALREADY_REGISTERED
    assert second.exit_code == 0


def test_second_run_is_skipped_by_the_ledger(manifests, catalog, state):
    directory = FakeDirectory([make_repo("web")])
    config = _config(mode="api")

    _onboarder(config, directory, manifests, catalog, state).run()
    report = _onboarder(config, directory, manifests, catalog, state).run()

    assert report.summary.results[0].skipped
    assert len(catalog.created) == 1


def test_dry_run_lists_without_processing(manifests, catalog):
    directory = FakeDirectory([make_repo("web", language="Go"), make_repo("old", archived=True)])
    console = Console(record=True, width=160)

    report = Onboarder(_config(mode="yaml", dry_run=True), directory, console=console).run()

    assert report.dry_run
    assert report.summary is None
    assert [r.name for r in report.repositories] == ["web"]
    assert report.discovered == 2
    assert directory.calls[0]["enrich"] is False
    text = console.export_text()
    assert "would process 1 repositories" in text
    assert "No changes were made." in text


def test_yaml_mode_enriches_and_passes_include(manifests, catalog, state):
    directory = FakeDirectory([make_repo("web"), make_repo("api")])

    _onboarder(_config(mode="yaml", include_repos=["web"]), directory, manifests, catalog, state).run()

    assert directory.calls == [{"organization": "acme", "include": ["web"], "enrich": True}]
    repo_name, content = manifests.writes[0]
    assert repo_name == "acme/web"
    assert "owner: octo-team" in content


def test_api_mode_does_not_enrich(manifests, catalog, state):
    directory = FakeDirectory([make_repo("web")])

    _onboarder(_config(mode="api"), directory, manifests, catalog, state).run()

    assert directory.calls[0]["enrich"] is False
    assert directory.calls[0]["include"] is None


def test_interrupted_run_exits_130(manifests, catalog, state, monkeypatch):
    real_as_completed = concurrent.futures.as_completed

    def as_completed(futures):
        pending = real_as_completed(futures)
        yield next(pending)
        raise KeyboardInterrupt

    monkeypatch.setattr(concurrent.futures, "as_completed", as_completed)
    directory = FakeDirectory([make_repo(f"svc-{i}") for i in range(4)])

    report = _onboarder(_config(mode="api", concurrency=1), directory, manifests, catalog, state).run()

    assert report.interrupted
    assert report.exit_code == 130
    assert len(report.summary.results) == 4
    assert report.summary.total == 0

"""Every adflow module imports cleanly and builds its models."""

from __future__ import annotations

import importlib
import pathlib

import pytest

import adflow

_ROOT = pathlib.Path(adflow.__file__).parent


def _module_names() -> list[str]:
    names = []
    for path in sorted(_ROOT.rglob("*.py")):
        parts = path.relative_to(_ROOT.parent).with_suffix("").parts
        if parts[-1] == "__init__":
            parts = parts[:-1]
        names.append(".".join(parts))
    return names


class TestImports:
    def test_modules_found(self) -> None:
        names = _module_names()
        assert "adflow.models.flows" in names
        assert "adflow.session.tab_session" in names

    @pytest.mark.parametrize("name", _module_names())
    def test_import(self, name: str) -> None:
        assert importlib.import_module(name) is not None

    def test_flow_model_builds(self) -> None:
        from adflow.models.flows import AdFlow
        from adflow.models.requests import Issue, RequestRecord

        record = RequestRecord(id="r1", url="https://x.example.com/", timestamp=0.0, stage="impression")
        flow = AdFlow(
            id="flow-1",
            start_time=0.0,
            end_time=0.0,
            requests=[record],
            stages={"impression": [record]},
            issues=[Issue(type="failed", severity="error", message="x")],
        )
        assert flow.request_ids == ["r1"]
        assert flow.stage_members("impression") == [record]

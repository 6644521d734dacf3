from __future__ import annotations

import importlib.util
import sys
from pathlib import Path
from types import SimpleNamespace


def _fake_locust_module():
    def task(weight=1):
        def decorator(fn):
            fn._task_weight = weight
            return fn

        return decorator

    return SimpleNamespace(HttpUser=object, task=task, between=lambda a, b: (a, b))


def test_locustfile_imports_without_real_locust(monkeypatch) -> None:
    monkeypatch.setitem(sys.modules, "locust", _fake_locust_module())

    path = Path(__file__).resolve().parents[3] / "locustfile.py"
    spec = importlib.util.spec_from_file_location("ecoguard_locustfile_test", path)
    assert spec and spec.loader
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)

    assert mod.EcoGuardUser.wait_time == (1, 3)
    assert mod.EcoGuardUser.load_home._task_weight == 5

    calls = []
    fake_self = SimpleNamespace(client=SimpleNamespace(get=lambda path: calls.append(path)))
    mod.EcoGuardUser.load_home(fake_self)
    mod.EcoGuardUser.health(fake_self)
    mod.EcoGuardUser.load_openapi(fake_self)

    assert calls == ["/", "/health", "/openapi.json"]

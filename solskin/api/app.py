"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from fastapi import FastAPI

from solskin.api.routes import metrics_router, router


def build_app(
    metrics: Any,
    reconciler: Any = None,
    evaluator: Any = None,
    queue: Any = None,
    config: Any = None,
    watchers: Sequence[Any] = (),
) -> FastAPI:
    """Create the REST app and attach the running components to ``app.state``.

    Components are duck-typed so the API layer does not import the engine.
    """
    from solskin import __version__

    app = FastAPI(
        title="Solskin",
        version=__version__,
        description="Workload compliance controller",
    )
    app.state.metrics = metrics
    app.state.reconciler = reconciler
    app.state.evaluator = evaluator
    app.state.queue = queue
    app.state.config = config
    app.state.watchers = list(watchers)

    app.include_router(metrics_router)
    app.include_router(router, prefix="/api/v1")
    return app

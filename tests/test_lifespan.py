"""Tests for the real api.main lifespan: startup wiring and orderly shutdown.

A bare FastAPI instance is driven through lifespan() directly. Nothing here
touches the network; the directory client only opens connections on request.
"""

from __future__ import annotations

import asyncio

from fastapi import FastAPI

from api.main import lifespan


def test_startup_wires_services_and_starts_sweep():
    async def run():
        app = FastAPI()
        async with lifespan(app):
            wired = all(
                hasattr(app.state, name)
                for name in ("session_store", "cache", "directory", "mailer", "tokens", "magic_links", "sessions")
            )
            running = not app.state.sweep_task.done()
        return wired, running

    assert asyncio.run(run()) == (True, True)


def test_shutdown_waits_for_sweep_task_to_finish():
    async def run():
        app = FastAPI()
        async with lifespan(app):
            task = app.state.sweep_task
        # Checked before asyncio.run() gets a chance to clean up stragglers.
        return task.done(), task.cancelled()

    assert asyncio.run(run()) == (True, True)


def test_shutdown_clears_session_state():
    async def run():
        app = FastAPI()
        async with lifespan(app):
            app.state.session_store.add_refresh_token("r1")
            app.state.cache.set("k", "v")
        return app.state.session_store.stats()["refresh_tokens"], app.state.cache.stats()["size"]

    assert asyncio.run(run()) == (0, 0)

"""FastAPI server for programmatic policy and proposal access."""

from __future__ import annotations

import time
from dataclasses import asdict
from typing import Any

import click
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from gatekeeper import __version__
from gatekeeper.config import RuntimeConfig, load_config
from gatekeeper.delegation.proposals import ProposalStore
from gatekeeper.delegation.repository import FileProposalRepository
from gatekeeper.errors import GatekeeperError
from gatekeeper.safety.policy import PolicyGate
from gatekeeper.safety.risk import evaluate_job_policy


class EvaluateRequest(BaseModel):
    command: str = Field(min_length=1)


class RiskRequest(BaseModel):
    paths: list[str] = Field(default_factory=list)
    owner_approved: bool = False


class _State:
    """Collaborators resolved on first use so importing the module has no side effects."""

    def __init__(
        self,
        config: RuntimeConfig | None,
        gate: PolicyGate | None,
        store: ProposalStore | None,
    ) -> None:
        self._config = config
        self._gate = gate
        self._store = store

    @property
    def config(self) -> RuntimeConfig:
        if self._config is None:
            self._config = load_config()
        return self._config

    @property
    def gate(self) -> PolicyGate:
        if self._gate is None:
            self._gate = PolicyGate.from_file(self.config.policy_path)
        return self._gate

    @property
    def store(self) -> ProposalStore:
        if self._store is None:
            self._store = ProposalStore(FileProposalRepository(self.config.proposals_path))
        return self._store


def create_app(
    config: RuntimeConfig | None = None,
    gate: PolicyGate | None = None,
    store: ProposalStore | None = None,
) -> FastAPI:
    app = FastAPI(
        title="Gatekeeper API",
        version=__version__,
        description="Policy gate, risk tiers and pending delegated proposals",
    )
    state = _State(config, gate, store)
    start_time = time.monotonic()

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        """Health check."""
        uptime = time.monotonic() - start_time
        return {"status": "ok", "version": __version__, "uptime_seconds": round(uptime, 1)}

    @app.post("/api/policy/evaluate")
    def evaluate(request: EvaluateRequest) -> dict[str, Any]:
        """Evaluate a command against the policy without running it."""
        try:
            verdict = state.gate.evaluate(request.command)
        except GatekeeperError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return asdict(verdict)

    @app.post("/api/risk")
    async def risk(request: RiskRequest) -> dict[str, Any]:
        """Classify the touched paths and decide whether approval is needed."""
        decision = evaluate_job_policy(request.paths, owner_approved=request.owner_approved)
        return {
            "risk_level": decision.risk_level.value,
            "allowed": decision.allowed,
            "requires_approval": decision.requires_approval,
            "approval_authority": decision.approval_authority.value,
            "reasons": decision.reasons,
        }

    @app.get("/api/proposals")
    def proposals(session_id: str | None = None) -> dict[str, Any]:
        """List pending proposals without filesystem paths."""
        try:
            pending = state.store.list_pending(session_id)
        except GatekeeperError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        now = time.time()
        items = [
            p.summary().to_dict() | {"session_id": p.session_id}
            for p in pending
            if not p.is_expired(now)
        ]
        return {"proposals": items, "count": len(items)}

    return app


app = create_app()


@click.command()
@click.option("--port", default=3848, help="Port to listen on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
def main(port: int, host: str) -> None:
    """Start the Gatekeeper API server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)

"""Mock device supervisor API for testing target-state round trips."""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
import uvicorn

logger = logging.getLogger("mock-supervisor")


def create_app() -> FastAPI:
    """Build a fresh mock supervisor with an empty target state."""
    app = FastAPI(title="Mock Supervisor")
    app.state.target_state = {
        "local": {"name": "local", "config": {}, "apps": {}},
        "dependent": {"apps": [], "devices": []},
    }
    app.state.writes = []

    @app.get("/ping", response_class=PlainTextResponse)
    async def ping():
        return "OK"

    @app.post("/v2/local/target-state")
    async def set_target_state(request: Request):
        body = await request.json()
        if "local" not in body:
            return JSONResponse(
                status_code=400,
                content={"status": "failed", "message": "Missing local state"},
            )
        app.state.writes.append(body)
        app.state.target_state = body
        logger.info(f"Target state written: {body['local'].get('config')}")
        return {"status": "success", "message": "OK"}

    @app.get("/v2/local/target-state")
    async def get_target_state():
        return {"state": app.state.target_state}

    return app


def run_mock_server(port: int = 48484):
    """Run mock server."""
    uvicorn.run(create_app(), host="127.0.0.1", port=port, log_level="info")


if __name__ == "__main__":
    run_mock_server()

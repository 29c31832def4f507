import os
import time
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


def create_app(name: str = "Mock Service") -> FastAPI:
    app = FastAPI(title=name)

    @app.get("/")
    async def root():
        return {
            "message": f"Hello from {name}!",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/items")
    async def list_items():
        return [{"id": i + 1, "name": f"Item {i + 1}"} for i in range(10)]

    @app.post("/api/items")
    async def create_item(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        item_name = payload.get("name") if isinstance(payload, dict) else None
        if not item_name or not isinstance(item_name, str):
            return JSONResponse({"error": "Name is required"}, status_code=400)
        return JSONResponse(
            {"id": int(time.time() * 1000), "name": item_name},
            status_code=201,
        )

    return app


app = create_app(os.environ.get("MOCK_SERVICE_NAME", "Mock Service"))


# Run with: uvicorn mock_service.app:app --port 3000

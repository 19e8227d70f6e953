"""Serve the tailor shop API with uvicorn."""

from __future__ import annotations

import os


def main() -> None:
    import uvicorn

    uvicorn.run(
        "tailor_shop.web.app:create_app",
        factory=True,
        host=os.getenv("TAILOR_SHOP_HOST", "127.0.0.1"),
        port=int(os.getenv("TAILOR_SHOP_PORT", "8000")),
    )


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()

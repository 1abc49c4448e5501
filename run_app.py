import os

import uvicorn


def main() -> None:
    """Run the resolver's FastAPI application with uvicorn."""
    uvicorn.run(
        "geo_resolver.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() == "true",
    )


if __name__ == "__main__":
    main()

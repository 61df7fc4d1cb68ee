import os

import uvicorn


def main() -> None:
    """Run the geolocation service with uvicorn; HOST, PORT and RELOAD come from the environment."""
    uvicorn.run(
        "iplocate.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
    )


if __name__ == "__main__":
    main()

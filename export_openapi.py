import json
import sys
from pathlib import Path

from iplocate.main import app


def main() -> None:
    """Write the service's OpenAPI schema, by default to openapi/iplocate.openapi.json."""
    out_path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("openapi") / "iplocate.openapi.json"
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(app.openapi(), indent=2))
    print(f"Wrote {out_path}")  # noqa: T201


if __name__ == "__main__":
    main()

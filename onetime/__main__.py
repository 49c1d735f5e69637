"""Run the API with uvicorn: python -m onetime."""

import uvicorn

from onetime.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("onetime.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()

# storefront/__main__.py
"""Run the API with uvicorn: ``python -m storefront`` or the ``storefront`` script."""
import uvicorn

from .settings import settings


def main() -> None:
    uvicorn.run("storefront.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()

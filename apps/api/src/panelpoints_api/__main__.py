import uvicorn

from panelpoints_api.core.settings import settings


def main() -> None:
    uvicorn.run(
        "panelpoints_api.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":
    main()

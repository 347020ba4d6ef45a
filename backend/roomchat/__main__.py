"""Run the roomchat server with uvicorn: ``python -m roomchat``."""
import uvicorn

from roomchat.config import get_config
from roomchat.main import app


def main() -> None:
    config = get_config()
    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()

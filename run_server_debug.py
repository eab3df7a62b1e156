"""Run the coordinator with uvicorn in debug mode (auto reload, access log)."""

import os
import socket
import sys

from dotenv import load_dotenv
load_dotenv()

from mpc_relay.api.config import settings
from mpc_relay.api.logging_config import setup_logging
setup_logging(settings)

print("=" * 80)
print("Coordinator debug server")
print("=" * 80)


def is_port_in_use(port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(('localhost', port)) == 0


if __name__ == "__main__":
    port = settings.api_port

    if is_port_in_use(port):
        print(f"Port {port} is already in use.")
        print("   Stop the process holding it or change API_PORT in .env")
        sys.exit(1)

    print(f"\nStarting coordinator: http://{settings.api_host}:{port}")
    print("=" * 80)
    print()

    import uvicorn

    project_root = os.path.dirname(os.path.abspath(__file__))
    package_dir = os.path.join(project_root, "mpc_relay")

    log_level = os.getenv("UVICORN_LOG_LEVEL", "info")
    try:
        uvicorn.run(
            "mpc_relay.api.main:app",
            host=settings.api_host,
            port=port,
            log_level=log_level,
            access_log=True,
            use_colors=True,
            reload=True,
            reload_dirs=[package_dir],
        )
    except KeyboardInterrupt:
        print("\n\nServer stopped")

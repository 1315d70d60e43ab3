"""Temporal client factory.

Connects either to a local Temporal server (no API key) or to Temporal
Cloud (API key over TLS), using settings from the environment.
"""

import os
import ssl
from pathlib import Path
from typing import Optional

# Load .env file if it exists
from dotenv import load_dotenv
env_path = Path(__file__).resolve().parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from temporalio.client import Client


DEFAULT_TEMPORAL_ENDPOINT = "localhost:7233"


def build_tls_context(cert_path: Optional[str] = None) -> ssl.SSLContext:
    """System CA context, with a client certificate chain when given."""
    tls_config = ssl.create_default_context()
    if cert_path:
        tls_config.load_cert_chain(cert_path)
    return tls_config


async def get_temporal_client() -> Client:
    """Create and return a Temporal client.

    Reads configuration from environment variables:
    - TEMPORAL_ENDPOINT: host:port (default "localhost:7233")
    - TEMPORAL_NAMESPACE: Namespace (default "default")
    - TEMPORAL_API_KEY: Temporal Cloud API key; enables TLS
    - TEMPORAL_CERT_PATH: Path to client certificate (optional, for mTLS)

    Returns:
        Connected Temporal client

    Raises:
        ValueError: If TEMPORAL_CERT_PATH points to a missing file
    """
    endpoint = os.getenv("TEMPORAL_ENDPOINT", DEFAULT_TEMPORAL_ENDPOINT)
    namespace = os.getenv("TEMPORAL_NAMESPACE", "default")
    api_key = os.getenv("TEMPORAL_API_KEY")
    cert_path = os.getenv("TEMPORAL_CERT_PATH")

    if cert_path and not Path(cert_path).exists():
        raise ValueError(f"TEMPORAL_CERT_PATH does not exist: {cert_path}")

    if not api_key and not cert_path:
        # Local development server
        return await Client.connect(endpoint, namespace=namespace)

    return await Client.connect(
        target_host=endpoint,
        namespace=namespace,
        tls=build_tls_context(cert_path),
        api_key=api_key,
    )

import json
import os
from pathlib import Path
from typing import Optional

import httpx
import typer
import uvicorn
from dotenv import load_dotenv

from mockhost.supervisor.settings import DEFAULT_HOST, DEFAULT_PORT

app = typer.Typer(help="Run and control locally supervised mock API servers.")

DEFAULT_URL = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}"
REQUEST_TIMEOUT_SECONDS = 30.0

URL_OPTION = typer.Option(DEFAULT_URL, "--url", envvar="MOCKHOST_URL", help="Mock host API base URL")


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        if "error" in payload:
            return str(payload["error"])
        if "detail" in payload:
            return json.dumps(payload["detail"])
    return str(payload)


def _call(method: str, url: str, path: str, **kwargs) -> httpx.Response:
    """Send one request; exit 1 on transport failure or non-2xx response."""
    try:
        response = httpx.request(method, f"{url.rstrip('/')}{path}", timeout=REQUEST_TIMEOUT_SECONDS, **kwargs)
    except (httpx.ConnectError, httpx.TimeoutException):
        typer.echo(f"Mock host is not responding at {url}")
        raise typer.Exit(code=1)
    if response.status_code >= 400:
        typer.echo(f"Error ({response.status_code}): {_error_message(response)}")
        raise typer.Exit(code=1)
    return response


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind host (default MOCKHOST_HOST or 127.0.0.1)"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (default MOCKHOST_PORT or 3500)"),
    reload: bool = typer.Option(False, "--reload/--no-reload"),
):
    """Run the management API in the foreground."""
    load_dotenv()
    bind_host = host or os.getenv("MOCKHOST_HOST", DEFAULT_HOST)
    bind_port = port or int(os.getenv("MOCKHOST_PORT", str(DEFAULT_PORT)))
    typer.echo(f"Management server running on http://{bind_host}:{bind_port}")
    uvicorn.run(
        "mockhost.supervisor.app:create_app",
        factory=True,
        host=bind_host,
        port=bind_port,
        reload=reload,
    )


@app.command()
def health(url: str = URL_OPTION):
    """Check that the management API is up."""
    payload = _call("GET", url, "/api/health").json()
    typer.echo(f"Mock host: {str(payload.get('status', 'unknown')).upper()}")


@app.command()
def start(port: int, config_file: str, url: str = URL_OPTION):
    """Start a mock server on PORT using CONFIG_FILE."""
    payload = _call("POST", url, "/api/mock/start", json={"port": port, "configFile": config_file}).json()
    typer.echo(payload.get("message", f"Mock server started on port {port}"))


@app.command()
def stop(port: int, url: str = URL_OPTION):
    """Stop the mock server on PORT."""
    payload = _call("POST", url, "/api/mock/stop", json={"port": port}).json()
    typer.echo(payload.get("message", f"Mock server on port {port} stopped"))


@app.command()
def status(url: str = URL_OPTION):
    """List running mock servers."""
    instances = _call("GET", url, "/api/mock/status").json()
    if not instances:
        typer.echo("No mock servers running.")
        return
    typer.echo(f"Running mock servers: {len(instances)}")
    for instance in instances:
        typer.echo(
            f" - port {instance['port']}: {instance['configFile']} "
            f"(up {instance['uptimeFormatted']})"
        )


@app.command()
def configs(url: str = URL_OPTION):
    """List stored configurations."""
    entries = _call("GET", url, "/api/mock/configs").json()
    if not entries:
        typer.echo("No configurations uploaded.")
        return
    for entry in entries:
        marker = " [in use]" if entry.get("inUse") else ""
        typer.echo(f" - {entry['name']} ({entry['size']}, modified {entry['modified']}){marker}")


@app.command()
def upload(path: Path, url: str = URL_OPTION):
    """Upload a JSON configuration file."""
    if not path.is_file():
        typer.echo(f"File not found: {path}")
        raise typer.Exit(code=1)
    with path.open("rb") as handle:
        files = {"config": (path.name, handle, "application/json")}
        payload = _call("POST", url, "/api/mock/upload", files=files).json()
    typer.echo(f"Uploaded {payload['filename']}")


@app.command()
def delete(name: str, url: str = URL_OPTION):
    """Delete a stored configuration."""
    payload = _call("DELETE", url, f"/api/mock/configs/{name}").json()
    typer.echo(payload.get("message", f"Configuration {name} deleted"))


@app.command()
def download(
    name: str,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to this file instead of stdout"),
    url: str = URL_OPTION,
):
    """Fetch a stored configuration document."""
    document = _call("GET", url, f"/api/mock/configs/{name}/download").json()
    rendered = json.dumps(document, indent=2)
    if output is None:
        typer.echo(rendered)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(rendered + "\n", encoding="utf-8")
    typer.echo(f"Saved -> {output}")


if __name__ == "__main__":
    app()

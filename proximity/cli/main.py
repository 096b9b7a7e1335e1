"""
Command-line client for the proximity API.

Configure with PROXIMITY_API_URL and PROXIMITY_TOKEN (a bearer token issued
by the auth layer).
"""
import typer
import httpx
import json
from typing import Optional, List, Dict, Any
from rich.console import Console
from rich.table import Table
import os

app = typer.Typer(help="Query travel times and nearby candidates from the proximity API")
console = Console()

API_URL = os.environ.get("PROXIMITY_API_URL", "http://localhost:8001/api")


def _headers() -> Dict[str, str]:
    token = os.environ.get("PROXIMITY_TOKEN")
    return {"Authorization": f"Bearer {token}"} if token else {}


def _point(value: str) -> Dict[str, float]:
    """Parse ``lat,lng`` into a point dict."""
    try:
        lat, lng = (float(part) for part in value.split(","))
    except ValueError:
        raise typer.BadParameter(f"Expected 'lat,lng', got '{value}'")
    return {"lat": lat, "lng": lng}


def _request(method: str, path: str, **kwargs) -> Optional[Any]:
    """Call the API and print HTTP failures; returns the JSON body or None."""
    try:
        response = httpx.request(method, f"{API_URL}{path}", headers=_headers(), timeout=30.0, **kwargs)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as e:
        try:
            message = e.response.json().get("message", e.response.text)
        except ValueError:
            message = e.response.text
        console.print(f"[bold red]HTTP error: {e.response.status_code} - {message}")
    except httpx.RequestError as e:
        console.print(f"[bold red]Request error: {str(e)}")
    return None


def _format_eta(eta: Optional[Dict[str, Any]]) -> str:
    if not eta:
        return "-"
    minutes = max(1, round(eta["duration_seconds"] / 60))
    km = eta["distance_meters"] / 1000
    return f"{minutes} min ({km:.1f} km, {eta.get('provider', '?')})"


@app.command()
def eta(
    origin: str = typer.Argument(..., help="Origin as lat,lng"),
    destination: str = typer.Argument(..., help="Destination as lat,lng"),
    mode: Optional[List[str]] = typer.Option(None, "--mode", "-m", help="Travel mode (repeatable)"),
    ttl: Optional[int] = typer.Option(None, help="Cache window in seconds (60-300)"),
    strict: bool = typer.Option(False, help="Fail instead of approximating"),
):
    """
    Show per-mode ETAs between two points.
    """
    payload: Dict[str, Any] = {"origin": _point(origin), "destination": _point(destination), "strict": strict}
    if mode:
        payload["modes"] = mode
    if ttl is not None:
        payload["ttl_seconds"] = ttl

    with console.status("[bold green]Resolving ETAs..."):
        result = _request("POST", "/routing/etas", json=payload)
    if result is None:
        raise typer.Exit(code=1)

    table = Table(show_header=True, header_style="bold green")
    table.add_column("Mode")
    table.add_column("ETA")
    for key, value in result.items():
        table.add_row(key, _format_eta(value))
    console.print(table)


@app.command()
def directions(
    origin: str = typer.Argument(..., help="Origin as lat,lng"),
    destination: str = typer.Argument(..., help="Destination as lat,lng"),
    mode: str = typer.Option("WALK", "--mode", "-m", help="Travel mode"),
    strict: bool = typer.Option(False, help="Fail instead of approximating"),
):
    """
    Show a route summary with its steps.
    """
    payload = {"origin": _point(origin), "destination": _point(destination), "mode": mode, "strict": strict}
    with console.status("[bold green]Resolving directions..."):
        result = _request("POST", "/routing/directions", json=payload)
    if result is None:
        raise typer.Exit(code=1)

    if not result.get("ok"):
        console.print(f"[bold red]No route: {result.get('error')}")
        raise typer.Exit(code=1)

    console.print(
        f"[bold]{mode.upper()}[/] via [cyan]{result['provider']}[/]: "
        f"{_format_eta(result)}"
    )
    for index, step in enumerate(result.get("steps", []), start=1):
        console.print(f"  {index}. {step.get('instruction') or '-'}")


@app.command("travel-time")
def travel_time(
    origin: str = typer.Argument(..., help="Origin as lat,lng"),
    destination: str = typer.Argument(..., help="Destination as lat,lng"),
):
    """
    Show the on foot / by cab / by bike summary.
    """
    payload = {"origin": _point(origin), "destination": _point(destination)}
    with console.status("[bold green]Resolving travel time..."):
        result = _request("POST", "/travel-time", json=payload)
    if result is None:
        raise typer.Exit(code=1)

    for key in ("walking", "driving", "bicycling", "uber"):
        option = result.get(key)
        if option:
            console.print(f"{key}: [cyan]{option['label']}[/]")
    fastest = result.get("fastest")
    if fastest:
        console.print(f"Fastest: [bold green]{fastest['label']}[/]")
    console.print(f"Provider: {json.dumps(result.get('meta', {}))}")


@app.command()
def nearby(
    lat: float = typer.Argument(..., help="Viewer latitude"),
    lng: float = typer.Argument(..., help="Viewer longitude"),
    radius: Optional[int] = typer.Option(None, help="Search radius in meters"),
    limit: Optional[int] = typer.Option(None, help="Maximum candidates"),
    approximate: bool = typer.Option(False, help="Store the viewer location on a coarse grid"),
):
    """
    Rank nearby candidates for the authenticated viewer.
    """
    params: Dict[str, Any] = {"lat": lat, "lng": lng, "approximate": approximate}
    if radius is not None:
        params["radius_m"] = radius
    if limit is not None:
        params["limit"] = limit

    with console.status("[bold green]Ranking nearby candidates..."):
        result = _request("GET", "/nearby", params=params)
    if result is None:
        raise typer.Exit(code=1)

    candidates = result.get("candidates", [])
    if not candidates:
        console.print("[yellow]No nearby candidates.")
    else:
        table = Table(show_header=True, header_style="bold green")
        table.add_column("User")
        table.add_column("Name")
        table.add_column("Distance")
        table.add_column("ETA")
        for candidate in candidates:
            profile = candidate.get("profile") or {}
            eta_seconds = candidate.get("eta_seconds")
            table.add_row(
                candidate["user_id"],
                profile.get("full_name") or "-",
                f"{candidate['distance_meters'] / 1000:.2f} km",
                f"{max(1, round(eta_seconds / 60))} min" if eta_seconds else "-",
            )
        console.print(table)

    for warning in result.get("warnings", []):
        console.print(f"[yellow]⚠️ {warning}")


if __name__ == "__main__":
    app()

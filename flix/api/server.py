import re
import httpx
from fastapi import FastAPI, Depends
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging

from ..config import TMDB_API_TOKEN, TMDB_API_URL, REQUEST_TIMEOUT

app = FastAPI(title="Flix Relay")
logger = logging.getLogger("Flix.Relay")

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)

ENDPOINT_PATTERN = re.compile(r"^[a-z_]+(/[a-z0-9_]+)*$")

def get_tmdb_token() -> str:
    return TMDB_API_TOKEN

async def get_tmdb_client():
    async with httpx.AsyncClient(base_url=TMDB_API_URL, timeout=REQUEST_TIMEOUT) as client:
        yield client

@app.get("/health")
async def health():
    return {"status": "ok", "token_configured": bool(get_tmdb_token())}

@app.get("/api/movies")
async def movies(
    endpoint: str = "discover/movie",
    language: str = "pt-BR",
    page: str = "1",
    sort_by: str = "popularity.desc",
    include_adult: str = "false",
    token: str = Depends(get_tmdb_token),
    client: httpx.AsyncClient = Depends(get_tmdb_client),
):
    if not token:
        return JSONResponse(status_code=500, content={"error": "API Token not configured"})
    if not ENDPOINT_PATTERN.match(endpoint):
        return JSONResponse(status_code=400, content={"error": "Invalid endpoint"})

    params = {
        "language": language,
        "page": page,
        "sort_by": sort_by,
        "include_adult": include_adult,
    }
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }

    try:
        response = await client.get(f"/{endpoint}", params=params, headers=headers)
        response.raise_for_status()
        return response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Error fetching from TMDb API: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch data from TMDb API"})

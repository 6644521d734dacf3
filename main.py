import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from ecoguard.services.web_app import create_app

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# Fails fast with ConfigurationError when GEMINI_API_KEY is missing,
# before uvicorn serves a single page.
app = create_app()


# Ensures that even errors are returned as JSON, not HTML
@app.exception_handler(404)
async def custom_404_handler(request: Request, __):
    return JSONResponse(
        status_code=404,
        content={"detail": "Not Found", "path": request.url.path},
    )


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Cross-Origin-Resource-Policy"] = "same-origin"

    # Tells browsers to only use HTTPS
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    # Session pages and analysis results must not be cached by proxies
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

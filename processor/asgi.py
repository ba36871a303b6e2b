"""
ASGI entrypoint: expose `app` pour les process managers.

- En production, uvicorn/gunicorn importe `processor.asgi:app`.
- Toute la configuration FastAPI est centralisée dans processor.app_setup, ce fichier n'expose que l'instance.
"""

from processor.app import app

if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run(
        "processor.asgi:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8080")),
        reload=True,
    )

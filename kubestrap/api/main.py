from dotenv import load_dotenv
from fastapi import FastAPI

from kubestrap import __version__
from kubestrap.api.middleware import AuthMiddleware
from kubestrap.api.routes import bootstrap

load_dotenv()
app = FastAPI(title="kubestrap", version=__version__)
app.add_middleware(AuthMiddleware)

app.include_router(bootstrap.router)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}

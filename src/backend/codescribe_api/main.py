import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codescribe_worker.config import API_HOST, API_PORT
from codescribe_worker.log import init_logger

from .api import jobs, webhooks

init_logger()

app = FastAPI(title="CodeScribe API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(jobs.router)
app.include_router(webhooks.router)


@app.get("/")
async def root():
    return {"message": "CodeScribe API"}


@app.get("/health")
async def health():
    return {"status": "healthy"}


def run():
    """Entry point for the codescribe-api console script."""
    uvicorn.run("codescribe_api.main:app", host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run()

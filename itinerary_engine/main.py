from fastapi import FastAPI
from itinerary_engine.api import itinerary
from itinerary_engine.core.config import settings
from fastapi.middleware.cors import CORSMiddleware

app = FastAPI(title="Itinerary Engine API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(itinerary.router)

@app.get("/")
def read_root():
    return {
        "message": "Itinerary Engine API is running.",
        "status": "healthy",
        "version": "0.1.0"
    }

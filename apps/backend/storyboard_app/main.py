from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

# Import routers
from storyboard_app.routers import avatar, regions

# Create FastAPI app
app = FastAPI(title="Storyboard Region Suite API", version="1.0.0")

# Configure CORS - MUST be before routers
ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

# Include routers
app.include_router(regions.router)
app.include_router(avatar.router)

@app.get("/")
def root():
    return {"message": "Storyboard Region Suite API", "version": "1.0.0"}

@app.get("/health")
def health():
    return {"status": "healthy"}

"""
FastAPI Backend for the BaZi Period & Compatibility engine.

Provides RESTful API endpoints for mobile app integration.
"""
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from dotenv import load_dotenv

from logic import (
    DEFAULT_TIMEZONE,
    ChartUnavailableError,
    calculate_daily_compatibility,
    get_basic_profile,
    get_chart_analysis,
    get_compatibility_report,
    get_luck_cycles,
    luck_pillar_at_age,
)
from luck_cycles import PeriodResolutionError
from models import BirthInput, LuckCyclesView

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- Pydantic Models for Request/Response ---


class BirthData(BaseModel):
    """Birth data for chart calculation."""
    birth_year: int = Field(..., ge=1900, le=2100, description="Year of birth (e.g., 1990)")
    month: int = Field(..., ge=1, le=12, description="Month of birth (1-12)")
    day: int = Field(..., ge=1, le=31, description="Day of birth (1-31)")
    hour: int = Field(12, ge=0, le=23, description="Hour of birth (0-23), ignored when time_known is false")
    minute: int = Field(0, ge=0, le=59, description="Minute of birth (0-59)")
    gender: str = Field(..., pattern="^(male|female)$", description="Gender (male/female)")
    timezone: str = Field(DEFAULT_TIMEZONE, description="IANA timezone of the birthplace")
    time_known: bool = Field(True, description="False when the birth hour is unknown")
    current_timezone: Optional[str] = Field(None, description="IANA timezone where the person lives now")

    def to_birth_input(self) -> BirthInput:
        return BirthInput(
            birth=datetime(self.birth_year, self.month, self.day, self.hour, self.minute),
            sex=self.gender,
            birth_timezone=self.timezone,
            time_known=self.time_known,
            current_timezone=self.current_timezone,
        )


class LuckCyclesRequest(BaseModel):
    """Request for /api/luck-cycles endpoint."""
    user_data: BirthData
    current_timezone: Optional[str] = Field(None, description="Timezone for 'now'; defaults to the birth timezone")


class LuckPillarRequest(BaseModel):
    """Request for /api/luck-pillar endpoint."""
    user_data: BirthData
    age: float = Field(..., description="Age in years (0-120)")


class CompatibilityRequest(BaseModel):
    """Request for /api/compatibility and /api/daily-compatibility endpoints."""
    user_a_data: BirthData
    user_b_data: BirthData
    relation_type: str = Field("romantic", description="romantic, family, friend, colleague or other")
    current_timezone: Optional[str] = Field(None, description="Timezone used for 'today' (daily endpoint)")


class DailyCompatibilityResponse(BaseModel):
    """Response for /api/daily-compatibility endpoint."""
    letter_grade: str
    insight: str
    delta: int


# --- FastAPI App Initialization ---

app = FastAPI(
    title="BaZi Period & Compatibility API",
    description="大运定位、合盘评分、每日合盘",
    version="v0.1.0"
)

# Configure CORS for mobile/web access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- API Endpoints ---

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "BaZi API is running"}


@app.post("/api/profile")
async def get_profile(data: BirthData):
    """
    Identity, rarity and element distribution for one chart.

    Pure calculation, no text generation.
    """
    try:
        return get_basic_profile(data.to_birth_input())
    except ChartUnavailableError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.post("/api/luck-cycles", response_model=LuckCyclesView)
async def get_current_luck_cycles(request: LuckCyclesRequest):
    """Current and next 大运 with the time remaining in the current one."""
    try:
        return get_luck_cycles(request.user_data.to_birth_input(), current_timezone=request.current_timezone)
    except ChartUnavailableError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PeriodResolutionError as e:
        logger.error("Luck cycle resolution failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Luck cycle error: {str(e)}")


@app.post("/api/luck-pillar")
async def get_luck_pillar(request: LuckPillarRequest):
    """The 大运 active at a given age."""
    person = request.user_data.to_birth_input()
    try:
        analysis = get_chart_analysis(person.birth, person.sex, person.birth_timezone, person.time_known)
    except ChartUnavailableError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return luck_pillar_at_age(analysis, request.age)


@app.post("/api/compatibility")
async def get_compatibility(request: CompatibilityRequest):
    """
    Analyze compatibility between two people based on their charts.

    Returns the score, category breakdown, rarity, chart display and narrative.
    """
    try:
        return await get_compatibility_report(
            request.user_a_data.to_birth_input(),
            request.user_b_data.to_birth_input(),
            relationship_type=request.relation_type,
        )
    except ChartUnavailableError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.post("/api/daily-compatibility", response_model=DailyCompatibilityResponse)
async def get_daily_compatibility(request: CompatibilityRequest):
    """Today's letter grade and one-line insight for the pair."""
    try:
        return await calculate_daily_compatibility(
            request.user_a_data.to_birth_input(),
            request.user_b_data.to_birth_input(),
            relationship_type=request.relation_type,
            current_timezone=request.current_timezone,
        )
    except ChartUnavailableError as e:
        raise HTTPException(status_code=422, detail=str(e))


# --- Run with: uvicorn main:app --reload ---
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))

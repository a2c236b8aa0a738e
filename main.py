#!/usr/bin/env python3
"""
PPG Vital Signs Pipeline — Main Entry Point
============================================
Launches the FastAPI backend with Uvicorn.
Run with:  python main.py

⚠️  DISCLAIMER: This is a WELLNESS ESTIMATION tool, NOT a medical device.
    All readings (HR, SpO2, blood pressure, arrhythmia flags) are ESTIMATES
    derived from a fingertip camera photoplethysmogram.
    Do NOT use these readings for clinical diagnosis or treatment decisions.
    Consult a qualified healthcare professional for medical advice.
"""

import uvicorn

from api.app import create_app
from config import API_HOST, API_PORT, LOG_LEVEL

if __name__ == "__main__":
    app = create_app()
    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        reload=False,
        log_level=LOG_LEVEL.lower(),
    )

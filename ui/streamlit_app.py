# Entry point: streamlit run ui/streamlit_app.py
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from main_content import run_main

run_main()

#!/usr/bin/env python3
"""
Print a CGPA summary from the locally cached semesters
Usage: python3 show_summary.py [cache_dir] [target_cgpa future_credits]
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from cgpa_tracker.analytics import build_analytics, target_projection
from cgpa_tracker.gpa_calculator import class_standing, format_gpa, performance_message
from cgpa_tracker.offline_cache import JsonFileStore, OfflineCache
from cgpa_tracker.settings import get_settings

settings = get_settings()
logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

cache_dir = Path(sys.argv[1]).expanduser() if len(sys.argv) > 1 else settings.CACHE_DIR
print(f"Reading cached semesters from {cache_dir}...")

snapshot = asyncio.run(OfflineCache(JsonFileStore(cache_dir)).load_snapshot())
if snapshot is None or not snapshot.semesters:
    print("ERROR: No cached semesters found")
    print("Usage: python3 show_summary.py [cache_dir] [target_cgpa future_credits]")
    sys.exit(1)

analytics = build_analytics(snapshot.semesters)
last_sync = snapshot.last_sync.strftime("%Y-%m-%d %H:%M") if snapshot.last_sync else "never"

print(f"\n📚 {analytics.total_semesters} semesters, {analytics.total_courses} courses, {analytics.total_credits} credits")
print(f"  Last sync: {last_sync}")
for semester in snapshot.semesters:
    print(f"  {semester.display_name:<20} GPA {format_gpa(semester.gpa)}  ({semester.total_credits} credits)")

if analytics.cgpa is None:
    print("\nNo graded courses yet")
    sys.exit(0)

print(f"\n✅ CGPA: {format_gpa(analytics.cgpa)} - {class_standing(analytics.cgpa)}")
print(f"  {performance_message(analytics.cgpa)}")
print(f"  Trend: {analytics.trend.label}")
if analytics.best_semester is not None:
    print(f"  Best: Semester {analytics.best_semester} ({format_gpa(analytics.best_gpa)})")
    print(f"  Worst: Semester {analytics.worst_semester} ({format_gpa(analytics.worst_gpa)})")

if len(sys.argv) > 3:
    target, future_credits = float(sys.argv[2]), float(sys.argv[3])
    needed = target_projection(snapshot.semesters, target, future_credits)
    if needed is None:
        print(f"\n⚠️  A CGPA of {target:.2f} is out of reach over {future_credits:g} credits")
    else:
        print(f"\n🎯 Need a GPA of {format_gpa(needed)} over {future_credits:g} credits for {target:.2f}")

import json
from pathlib import Path

from drone_survey.models import mission_json_schema

out = Path("schemas/mission.schema.json")
out.parent.mkdir(parents=True, exist_ok=True)
out.write_text(json.dumps(mission_json_schema(), indent=2))
print(f"Wrote {out}")

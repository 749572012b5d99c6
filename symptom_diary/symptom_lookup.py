"""
Static symptom reference list and its search filter.
"""

from typing import List

from symptom_diary.models import SymptomInfo

REFERENCE_SYMPTOMS = (
    SymptomInfo(
        name="Rash",
        description="A change in skin appearance or texture, often with redness, bumps, or irritation.",
        keywords=["itchy", "red", "bumps", "skin", "irritation", "hives"],
    ),
    SymptomInfo(
        name="Fever",
        description="Elevated body temperature, usually above 100.4°F (38°C), often indicating infection.",
        keywords=["temperature", "hot", "chills", "sweating", "infection"],
    ),
    SymptomInfo(
        name="Headache",
        description="Pain in the head or upper neck, ranging from mild to severe.",
        keywords=["pain", "head", "migraine", "pressure", "throbbing"],
    ),
    SymptomInfo(
        name="Cough",
        description="A reflex action to clear airways of mucus, irritants, or foreign particles.",
        keywords=["throat", "phlegm", "dry", "productive", "wheeze"],
    ),
    SymptomInfo(
        name="Fatigue",
        description="Extreme tiredness or lack of energy that doesn't improve with rest.",
        keywords=["tired", "exhausted", "weak", "energy", "sleepy"],
    ),
    SymptomInfo(
        name="Nausea",
        description="An uncomfortable sensation of wanting to vomit.",
        keywords=["sick", "stomach", "queasy", "vomit", "upset"],
    ),
    SymptomInfo(
        name="Swelling",
        description="Enlargement or puffiness in a body part due to fluid accumulation.",
        keywords=["puffy", "inflammation", "edema", "enlarged", "bloated"],
    ),
    SymptomInfo(
        name="Joint Pain",
        description="Discomfort, aches, or soreness in body joints.",
        keywords=["arthritis", "stiff", "ache", "knee", "elbow", "shoulder"],
    ),
)


def find_symptoms(query: str) -> List[SymptomInfo]:
    """Return reference entries matching *query*; a blank query returns all of them."""
    if not query or not query.strip():
        return list(REFERENCE_SYMPTOMS)
    return [s for s in REFERENCE_SYMPTOMS if s.matches(query)]

"""
Sample complaint generator.

Synthetic citizen complaints for demos and smoke runs. Templates come in
families that should land in the same cluster.
"""

import logging
import random
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


TEMPLATES = [
    # Water supply (should cluster together)
    ("Water pipe is leaking badly near the market every single day", "Ward 4"),
    ("No water supply since three days, the tap is completely dry", "Ward 4"),
    ("Drinking water shortage in our colony, please help urgently", "Ward 4"),
    ("Broken water pipe flooding the street outside my house", "Ward 7"),

    # Roads
    ("Huge pothole on main road causing accidents for bikers", "Ward 2"),
    ("Road surface badly damaged after rains, needs urgent repair", "Ward 2"),
    ("Cracked pavement and broken road near the school gate", "Ward 9"),

    # Garbage
    ("Garbage not collected for a week, terrible smell everywhere", "Ward 5"),
    ("Overflowing trash bin attracting stray dogs and flies", "Ward 5"),
    ("Waste dumped in the empty plot, dirty and unhealthy area", "Ward 3"),

    # Street lights / power
    ("Street lights not working, whole lane is dark at night", "Ward 1"),
    ("Frequent power outage every evening for last two weeks", "Ward 1"),
    ("Hanging electric wire near the bus stop is dangerous", "Ward 6"),

    # Drainage
    ("Sewage overflow on the street, stagnant water breeding mosquitoes", "Ward 8"),
    ("Drain blocked and clogged, flooding whenever it rains", "Ward 8"),

    # Noise
    ("Loud construction noise late at night disturbing residents", "Ward 3"),

    # Safety
    ("Theft cases rising in the area, police patrol needed urgently", "Ward 6"),
    ("Unsafe dark park entrance, women feel in danger at night", "Ward 6"),

    # Transport
    ("Traffic signal broken at junction causing heavy congestion", "Ward 2"),
    ("Bus service irregular, commuters waiting for hours daily", "Ward 9"),
]


def generate_sample_complaints(count: int, seed: Optional[int] = None) -> List[Tuple[str, str]]:
    """
    Generate synthetic (text, location) pairs.

    Cycles through the templates and adds light wording variation so the
    ingestion agent sees casing and punctuation noise.
    """
    rng = random.Random(seed)
    complaints = []

    for i in range(count):
        text, location = TEMPLATES[i % len(TEMPLATES)]

        variations = [
            text,
            text.upper(),
            f"Complaint: {text}",
            f"{text}. Please fix this ASAP!",
            f"{text}   again",
        ]
        complaints.append((rng.choice(variations), location))

    logger.info(f"Generated {len(complaints)} sample complaints")
    return complaints

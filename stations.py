# Long-distance stations (EVA numbers) and their neighbours for extension search

import json
from pathlib import Path
from typing import Dict, List, Optional

STATION_NAMES = {
    # Berlin
    "8011160": "Berlin Hbf", "8010404": "Berlin-Spandau", "8011113": "Berlin Südkreuz", "8010255": "Berlin Ostbahnhof",
    # North
    "8002549": "Hamburg Hbf", "8000147": "Hamburg-Harburg", "8000050": "Bremen Hbf", "8000152": "Hannover Hbf",
    "8006552": "Wolfsburg Hbf", "8000128": "Göttingen", "8000036": "Bielefeld Hbf",
    # Rhine-Ruhr
    "8000080": "Dortmund Hbf", "8000098": "Essen Hbf", "8000086": "Duisburg Hbf", "8000085": "Düsseldorf Hbf",
    "8000207": "Köln Hbf", "8000044": "Bonn Hbf", "8000263": "Münster(Westf)Hbf",
    # Centre & East
    "8003200": "Kassel-Wilhelmshöhe", "8000115": "Fulda", "8010101": "Erfurt Hbf", "8010205": "Leipzig Hbf",
    "8010159": "Halle(Saale)Hbf", "8010085": "Dresden Hbf",
    # Rhine-Main & South-West
    "8000105": "Frankfurt(Main)Hbf", "8070003": "Frankfurt(M) Flughafen Fernbf", "8000240": "Mainz Hbf",
    "8000206": "Koblenz Hbf", "8000244": "Mannheim Hbf", "8000156": "Heidelberg Hbf", "8000191": "Karlsruhe Hbf",
    "8000107": "Freiburg(Breisgau) Hbf", "8000096": "Stuttgart Hbf",
    # Bavaria
    "8000260": "Würzburg Hbf", "8000025": "Bamberg", "8000284": "Nürnberg Hbf", "8000170": "Ulm Hbf",
    "8000013": "Augsburg Hbf", "8000261": "München Hbf",
}

# Adjacency list of the long-distance network, nearest stops first
STATION_GRAPH = {
    "8011160": ["8010404", "8011113", "8010255"],
    "8010404": ["8011160", "8002549", "8006552"],
    "8011113": ["8011160", "8010205", "8010159", "8010085"],
    "8010255": ["8011160"],
    "8002549": ["8010404", "8000147"],
    "8000147": ["8002549", "8000050", "8000152"],
    "8000050": ["8000147", "8000152", "8000263"],
    "8000152": ["8000147", "8000050", "8006552", "8000128", "8000036"],
    "8006552": ["8000152", "8010404"],
    "8000128": ["8000152", "8003200"],
    "8000036": ["8000152", "8000080"],
    "8000080": ["8000098", "8000036", "8000263"],
    "8000098": ["8000086", "8000080"],
    "8000086": ["8000085", "8000098"],
    "8000085": ["8000207", "8000086"],
    "8000207": ["8000085", "8000044", "8070003"],
    "8000044": ["8000207", "8000206"],
    "8000263": ["8000080", "8000050"],
    "8003200": ["8000128", "8000115", "8010101"],
    "8000115": ["8003200", "8000105", "8000260", "8010101"],
    "8010101": ["8010205", "8010159", "8000025", "8000115", "8003200"],
    "8010205": ["8011113", "8010159", "8010101", "8010085"],
    "8010159": ["8011113", "8010205", "8010101"],
    "8010085": ["8010205", "8011113"],
    "8000105": ["8000115", "8000260", "8070003", "8000244", "8000240"],
    "8070003": ["8000105", "8000207", "8000240", "8000244"],
    "8000240": ["8000206", "8000105", "8070003", "8000244"],
    "8000206": ["8000044", "8000240"],
    "8000244": ["8000105", "8070003", "8000240", "8000156", "8000191", "8000096"],
    "8000156": ["8000244", "8000191"],
    "8000191": ["8000244", "8000156", "8000107", "8000096"],
    "8000107": ["8000191"],
    "8000096": ["8000244", "8000191", "8000170"],
    "8000260": ["8000115", "8000105", "8000284"],
    "8000025": ["8010101", "8000284"],
    "8000284": ["8000025", "8000260", "8000261"],
    "8000170": ["8000096", "8000013"],
    "8000013": ["8000170", "8000261"],
    "8000261": ["8000013", "8000284"],
}


def load_station_graph(path) -> Dict[str, List[str]]:
    """Loads an adjacency list from a JSON object of station -> [stations]."""
    with open(Path(path), "r", encoding="utf-8") as f:
        payload = json.load(f)
    if not isinstance(payload, dict):
        raise ValueError(f"Station graph in {path} must be a JSON object")
    return {str(station): [str(n) for n in neighbours] for station, neighbours in payload.items()}


def adjacent_stations(station: str, graph: Optional[Dict[str, List[str]]] = None) -> List[str]:
    """Returns the neighbours of a station, or an empty list if it is unknown."""
    if graph is None:
        graph = STATION_GRAPH
    return list(graph.get(station) or [])


def get_station_name(station: Optional[str]):
    """Returns a display name for a station id, falling back to the id itself."""
    if not station:
        return "?"
    return STATION_NAMES.get(station, station)

"""Cable-tracking schema: canonical columns and header aliases."""

from typing import Dict, List

# Canonical cable columns in display order ("code" is the identity key)
STANDARD_FIELDS = [
    "code",
    "inca_code",
    "cable_mark",
    "description",
    "type",
    "section",
    "system",
    "zone_from",
    "zone_to",
    "apparatus_from",
    "apparatus_to",
    "description_from",
    "description_to",
    "theoretical_length",
    "actual_length",
    "status",
    "progress_percent",
    "wbs",
    "page",
]

# Mapping of canonical header spellings (see canonical_header) to standard fields.
# Order matters for "code": the cable mark wins over the INCA code when both exist.
COLUMN_MAPPINGS: Dict[str, List[str]] = {
    "code": [
        "MARCA_CAVO", "MARCA", "MARCA_PEZZO", "CODICE", "CODICE_CAVO", "CAVO",
        "CODE", "CABLE", "CABLE_CODE", "CABLE_MARK",
    ],
    "inca_code": ["CODICE_INCA", "INCA_CODE"],
    "cable_mark": ["MARCA_CAVO", "MARCA", "CABLE_MARK"],
    "description": ["DESCRIZIONE", "DESCR", "DESCRIPTION"],
    "type": ["TIPO", "TIPO_CAVO", "TYPE", "CABLE_TYPE"],
    "section": ["SEZIONE", "SEC", "SECTION"],
    "system": ["IMPIANTO", "PLANT", "SYSTEM"],
    "zone_from": ["ZONA_DA", "ZONA_D", "ZONA_FROM", "ZONE_FROM"],
    "zone_to": ["ZONA_A", "ZONA_TO", "ZONE_TO"],
    "apparatus_from": [
        "APPARATO_DA", "APPARATO_D", "FROM_APPARATO", "APPARATO_FROM", "APP_PARTENZA",
        "APPARATUS_FROM",
    ],
    "apparatus_to": [
        "APPARATO_A", "APPARATO_TO", "TO_APPARATO", "APP_ARRIVO", "APPARATUS_TO",
    ],
    "description_from": ["DESCRIZIONE_DA", "DESCR_DA", "DESCRIZIONE_FROM", "DESCRIPTION_FROM"],
    "description_to": ["DESCRIZIONE_A", "DESCR_A", "DESCRIZIONE_TO", "DESCRIPTION_TO"],
    "theoretical_length": [
        "LUNGHEZZA_DI_DISEGNO", "LUNGHEZZA_DISEGNO", "METRI_TEO", "METRI_TEORICI",
        "THEORETICAL_LENGTH",
    ],
    "actual_length": [
        "LUNGHEZZA_DI_POSA", "LUNGHEZZA_POSA", "LUNGHEZZA_POSATA", "METRI_DIS",
        "METRI_POSATI", "ACTUAL_LENGTH",
    ],
    "status": ["STATO_CANTIERE", "SITUAZIONE", "STATO", "STATO_INCA", "STATUS"],
    "progress_percent": ["PROGRESS", "PROGRESS_PERCENT", "AVANZAMENTO"],
    "wbs": ["WBS"],
    "page": ["PAGINA_PDF", "PAGINA", "PAGE", "FOGLIO"],
}

# Columns holding lengths or percentages; cells are parsed as numbers
NUMERIC_FIELDS = {"theoretical_length", "actual_length", "progress_percent"}

__all__ = [
    "STANDARD_FIELDS",
    "COLUMN_MAPPINGS",
    "NUMERIC_FIELDS",
]

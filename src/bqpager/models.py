from enum import Enum
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import ShapeMismatch


DEFAULT_PAGE_SIZE = 5000

Cell = Optional[str]
Row = List[Cell]


class DataType(str, Enum):
    STRING = "STRING"
    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    BOOLEAN = "BOOLEAN"
    TIMESTAMP = "TIMESTAMP"
    RECORD = "RECORD"

    @classmethod
    def parse(cls, name: str) -> Optional["DataType"]:
        """
        Resolves a column type name, including standard SQL aliases.
        Returns None for types this package does not know about.
        """
        name = _TYPE_ALIASES.get(name.upper(), name.upper())
        try:
            return cls(name)
        except ValueError:
            return None


_TYPE_ALIASES = {
    "INT64": "INTEGER",
    "FLOAT64": "FLOAT",
    "BOOL": "BOOLEAN",
    "STRUCT": "RECORD",
}


class WriteDisposition(str, Enum):
    TRUNCATE = "WRITE_TRUNCATE"
    APPEND = "WRITE_APPEND"
    EMPTY = "WRITE_EMPTY"


class CreateDisposition(str, Enum):
    IF_NEEDED = "CREATE_IF_NEEDED"
    NEVER = "CREATE_NEVER"


@dataclass(frozen=True)
class Field:
    name: str
    type: str

    @property
    def data_type(self) -> Optional[DataType]:
        return DataType.parse(self.type)


Schema = List[Field]


@dataclass(frozen=True)
class JobReference:
    project_id: str
    job_id: str
    location: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["JobReference"]:
        if not data or not data.get("jobId"):
            return None
        return cls(
            project_id=data.get("projectId", ""),
            job_id=data["jobId"],
            location=data.get("location"),
        )

    def to_dict(self) -> Dict[str, Any]:
        ref = {"projectId": self.project_id, "jobId": self.job_id}
        if self.location:
            ref["location"] = self.location
        return ref


@dataclass(frozen=True)
class JobConfiguration:
    """
    Settings for the explicit job path, used when results must be
    materialized into a destination table.
    """

    destination_table: str
    allow_large_results: bool = False
    write_disposition: WriteDisposition = WriteDisposition.EMPTY
    create_disposition: CreateDisposition = CreateDisposition.IF_NEEDED

    def to_dict(
        self,
        query: str,
        project_id: str,
        dataset_id: str,
        use_legacy_sql: bool = False,
    ) -> Dict[str, Any]:
        return {
            "configuration": {
                "query": {
                    "query": query,
                    "useLegacySql": use_legacy_sql,
                    "allowLargeResults": self.allow_large_results,
                    "writeDisposition": WriteDisposition(self.write_disposition).value,
                    "createDisposition": CreateDisposition(self.create_disposition).value,
                    "defaultDataset": {"projectId": project_id, "datasetId": dataset_id},
                    "destinationTable": {
                        "projectId": project_id,
                        "datasetId": dataset_id,
                        "tableId": self.destination_table,
                    },
                }
            }
        }


@dataclass
class Page:
    """
    One unit of a paginated result set, produced by a single round trip.
    total_rows is only authoritative when complete is True.
    """

    schema: Schema
    rows: List[Row]
    complete: bool
    total_rows: int = 0
    job_reference: Optional[JobReference] = None
    page_token: Optional[str] = None

    @classmethod
    def from_response(cls, resp: Dict[str, Any]) -> "Page":
        fields_data = (resp.get("schema") or {}).get("fields", [])
        schema = [Field(f["name"], f.get("type", "STRING")) for f in fields_data]

        rows = []
        for r in resp.get("rows") or []:
            rows.append([_cell_text(c.get("v")) for c in r.get("f", [])])

        return cls(
            schema=schema,
            rows=rows,
            complete=bool(resp.get("jobComplete", False)),
            total_rows=int(resp.get("totalRows") or 0),
            job_reference=JobReference.from_dict(resp.get("jobReference")),
            page_token=resp.get("pageToken") or None,
        )

    @property
    def headers(self) -> List[str]:
        return [f.name for f in self.schema]

    def to_values(self) -> List[List[Any]]:
        """
        Returns the rows as a 2D list of natively typed values, without
        requiring a destination record type.
        """
        from .decoder import convert_value

        parsed = []
        for row in self.rows:
            if len(row) != len(self.schema):
                raise ShapeMismatch("Schema length does not match record length")
            parsed.append([convert_value(f, v) for f, v in zip(self.schema, row)])
        return parsed


def _cell_text(v: Any) -> Cell:
    # RECORD and REPEATED cells arrive as nested JSON; keep them opaque.
    if v is None or isinstance(v, str):
        return v
    return str(v)

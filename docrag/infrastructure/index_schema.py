# docrag/infrastructure/index_schema.py
# On-disk shape of a collection. Keys are camelCase to stay readable by
# any tool that already consumes index.json files.

from datetime import datetime
from typing import List

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    model_validator,
)


class RecordSchema(BaseModel):
    id: StrictStr
    source: StrictStr
    chunk: StrictInt = Field(ge=1)
    text: StrictStr
    embedding: List[StrictFloat]


class IndexDocumentSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    created_at: datetime = Field(alias="createdAt")
    source: StrictStr
    embed_model: StrictStr = Field(alias="embedModel")
    chunk_size: StrictInt = Field(alias="chunkSize", gt=0)
    chunk_overlap: StrictInt = Field(alias="chunkOverlap", ge=0)
    count: StrictInt = Field(ge=0)
    items: List[RecordSchema]

    @model_validator(mode="after")
    def _count_matches_items(self) -> "IndexDocumentSchema":
        if self.count != len(self.items):
            raise ValueError(
                f"count is {self.count} but {len(self.items)} items are present"
            )
        return self

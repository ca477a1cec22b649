from pydantic import BaseModel, ConfigDict


class Index(BaseModel):
    """A named set of fields a location is indexed on.

    Field types follow the Elasticsearch mapping types ("keyword", "text",
    "long", "date"...). Dotted names index nested fields.

    Example:
        Index(name="owner_status", fields={"owner": "keyword", "status": "keyword"})
    """

    model_config = ConfigDict(frozen=True)

    name: str
    fields: dict[str, str]

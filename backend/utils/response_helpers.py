"""
Response helper utilities for handling UUID conversions and model validation
"""
from typing import Any, Iterable, List
import uuid
from pydantic import BaseModel
from sqlalchemy import inspect


def convert_uuids_to_strings(obj: Any) -> Any:
    """
    Recursively convert UUID objects to strings in any data structure
    """
    if isinstance(obj, uuid.UUID):
        return str(obj)
    elif isinstance(obj, dict):
        return {key: convert_uuids_to_strings(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [convert_uuids_to_strings(item) for item in obj]
    return obj


def model_to_dict(obj: Any, include: Iterable[str] = ()) -> dict:
    """
    Column values of a SQLAlchemy object, plus the named relationships.
    Relationships are only followed when asked for, so back references
    (order.items[0].order) never recurse.
    """
    data = {attr.key: getattr(obj, attr.key) for attr in inspect(obj).mapper.column_attrs}
    for name in include:
        value = getattr(obj, name)
        if isinstance(value, list):
            data[name] = [model_to_dict(item) for item in value]
        else:
            data[name] = model_to_dict(value) if value is not None else None
    return data


def safe_model_validate(model_class: BaseModel, data: Any, include: Iterable[str] = ()) -> BaseModel:
    """
    Safely validate a model by converting UUIDs to strings first
    """
    if not isinstance(data, dict):
        data = model_to_dict(data, include)
    return model_class.model_validate(convert_uuids_to_strings(data))


def safe_model_validate_list(model_class: BaseModel, data_list: Iterable[Any], include: Iterable[str] = ()) -> List[BaseModel]:
    """
    Safely validate a list of models by converting UUIDs to strings first
    """
    return [safe_model_validate(model_class, item, include) for item in data_list]

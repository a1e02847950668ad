from typing import List


def file_batch(*names: str, milestone_id: int = 0, size: int = 2048) -> List[dict]:
    """Описания файлов, уже загруженных в хранилище."""
    return [
        {
            "key": f"uploads/1/{milestone_id}/1700000000000-{name}",
            "name": name,
            "size": size,
            "type": "application/pdf",
            "last_modified": 1700000000000,
        }
        for name in names
    ]


def api_files(*names: str, milestone_id: int = 0) -> List[dict]:
    """То же в формате тела запроса (camelCase)."""
    return [
        {
            "key": f["key"],
            "name": f["name"],
            "size": f["size"],
            "type": f["type"],
            "lastModified": f["last_modified"],
        }
        for f in file_batch(*names, milestone_id=milestone_id)
    ]

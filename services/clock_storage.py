from typing import Optional, Sequence

from services.clock_fields import generate_field_schema, has_field_schema_changed
from services.kv_store import KeyValueStore
from services.models import ClockField

SCHEMA_KEY = "jobcan_clock_fields_schema"
FIELD_VALUE_PREFIX = "jobcan_clock_field_value_"


class ClockFieldStore:
    """フォーム項目の指紋と、前回入力した値（記憶値）を保存する"""

    def __init__(self, store: KeyValueStore):
        self._store = store

    async def get_stored_schema(self) -> Optional[str]:
        return await self._store.get(SCHEMA_KEY)

    async def set_stored_schema(self, schema: str) -> None:
        await self._store.set(SCHEMA_KEY, schema)

    async def set_remembered_value(self, field_name: str, value: str) -> None:
        await self._store.set(f"{FIELD_VALUE_PREFIX}{field_name}", value)

    async def clear_value(self, field_name: str) -> None:
        await self._store.delete(f"{FIELD_VALUE_PREFIX}{field_name}")

    async def get_all_remembered_values(self) -> dict[str, str]:
        items = await self._store.items_with_prefix(FIELD_VALUE_PREFIX)
        return {key[len(FIELD_VALUE_PREFIX):]: value for key, value in items.items()}

    async def remember(
        self,
        fields: Sequence[ClockField],
        values: dict[str, str],
        remember_flags: dict[str, bool],
    ) -> None:
        """フラグに従って値を保存・削除し、現在のフォーム構成を指紋として保存する"""
        for field_name, should_remember in remember_flags.items():
            if should_remember:
                await self.set_remembered_value(field_name, values.get(field_name) or "")
            else:
                await self.clear_value(field_name)
        await self.set_stored_schema(generate_field_schema(fields))

    async def can_resubmit(self, fields: Sequence[ClockField]) -> bool:
        """フォーム構成が前回と同じで、必須項目の記憶値が揃っていれば確認なしで送信できる"""
        if has_field_schema_changed(fields, await self.get_stored_schema()):
            return False
        remembered = await self.get_all_remembered_values()
        return all(remembered.get(f.name) for f in fields if f.required)

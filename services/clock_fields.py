"""打刻修正フォームの項目検出とスキーマ指紋

フォームの構造はポータル側の都合で変わるため、select / input / textarea を走査して
ClockFieldの一覧に変換する。select / input にはパーサの (種別, 判定関数, パーサ) の順序付きタプルを
先頭から順に試し、最初に結果を返したものを採用する。textarea は常に汎用のテキスト項目として扱う。
項目を追加したい場合は FIELD_PARSERS の前に独自のエントリを並べたタプルを渡す。
"""
from typing import Callable, NamedTuple, Optional, Sequence

from bs4 import BeautifulSoup, Tag

from services.models import ClockField, SelectOption

SYSTEM_FIELDS = frozenset({"token", "client_id", "employee_id"})
SCHEMA_SEPARATOR = "|"

CLOCK_IN_FIELD = "clockInTime"
CLOCK_OUT_FIELD = "clockOutTime"
DEFAULT_CLOCK_IN = "10:00"
DEFAULT_CLOCK_OUT = "19:00"


class FieldParser(NamedTuple):
    kind: str
    matches: Callable[[Tag], bool]
    parse: Callable[[Tag, Tag], Optional[ClockField]]


def _is_required(element: Tag) -> bool:
    return element.has_attr("required")


def find_label_for_field(field: Tag, root: Tag) -> Optional[str]:
    """label[for] → 祖先要素内のlabel → 項目名を含むth の順でラベルを探す"""
    field_id = field.get("id")
    if field_id:
        label = root.find("label", attrs={"for": field_id})
        if label is not None:
            return label.get_text(strip=True)

    for ancestor in field.parents:
        label = ancestor.find("label")
        if label is not None:
            return label.get_text(strip=True)

    name = field.get("name")
    if name:
        for th in root.find_all("th"):
            text = th.get_text(strip=True)
            if name in text:
                return text

    return None


def parse_select_field(select: Tag, root: Tag) -> Optional[ClockField]:
    name = select.get("name")
    options = []
    for option in select.find_all("option"):
        value = option.get("value") or ""
        label = option.get_text(strip=True)
        if value and label:
            options.append(SelectOption(value=value, label=label))

    if not options:
        return None

    default_label = "Clock-in/out Spot" if name == "group_id" else name
    return ClockField(
        name=name,
        type="select",
        required=True,
        label=find_label_for_field(select, root) or default_label,
        options=options,
        default_value=options[0].value,
    )


def parse_notice_field(element: Tag, root: Tag) -> Optional[ClockField]:
    if element.get("name") != "notice":
        return None
    # 備考はポータル側で必須扱い
    return ClockField(
        name="notice",
        type="text",
        required=True,
        label=find_label_for_field(element, root) or "Notes",
    )


def parse_time_field(element: Tag, root: Tag) -> Optional[ClockField]:
    name = element.get("name") or ""
    lowered = name.lower()
    if not any(word in lowered for word in ("time", "in", "out")):
        return None

    label = find_label_for_field(element, root)
    if not label or not any(word in label.lower() for word in ("time", "clock")):
        return None

    label_lowered = label.lower()
    if "in" in lowered or "in" in label_lowered:
        field_name = CLOCK_IN_FIELD
    elif "out" in lowered or "out" in label_lowered:
        field_name = CLOCK_OUT_FIELD
    else:
        field_name = name

    return ClockField(
        name=field_name,
        type="time",
        required=_is_required(element),
        label=label,
    )


def parse_text_field(element: Tag, root: Tag) -> Optional[ClockField]:
    name = element.get("name")
    if not name or name in SYSTEM_FIELDS:
        return None
    if (element.get("type") or "").lower() == "hidden":
        return None

    return ClockField(
        name=name,
        type="text",
        required=_is_required(element),
        label=find_label_for_field(element, root) or name,
    )


def _named(name: str) -> Callable[[Tag], bool]:
    return lambda element: element.name in ("select", "input") and element.get("name") == name


def _tag(*tag_names: str) -> Callable[[Tag], bool]:
    return lambda element: element.name in tag_names


FIELD_PARSERS: tuple[FieldParser, ...] = (
    FieldParser("group_id", _named("group_id"), parse_select_field),
    FieldParser("notice", _named("notice"), parse_notice_field),
    FieldParser("select", _tag("select"), parse_select_field),
    FieldParser("notice_text", _tag("input"), parse_notice_field),
    FieldParser("time", _tag("input"), parse_time_field),
    FieldParser("text", _tag("input"), parse_text_field),
)


def _parse_element(element: Tag, root: Tag, parsers: Sequence[FieldParser]) -> Optional[ClockField]:
    for parser in parsers:
        if not parser.matches(element):
            continue
        parsed = parser.parse(element, root)
        if parsed is not None:
            return parsed
    return None


def parse_clock_fields(html: str, parsers: Sequence[FieldParser] = FIELD_PARSERS) -> list[ClockField]:
    """修正画面のHTMLからフォーム項目を検出する"""
    root = BeautifulSoup(html, "lxml")
    fields: list[ClockField] = []
    processed: set[str] = set()

    elements = [*root.find_all("select"), *root.find_all("input"), *root.find_all("textarea")]
    for element in elements:
        name = element.get("name")
        if not name or name in processed:
            continue
        if element.name == "input" and (
            (element.get("type") or "").lower() == "hidden" or name in SYSTEM_FIELDS
        ):
            continue

        if element.name == "textarea":
            parsed = parse_text_field(element, root)
        else:
            parsed = _parse_element(element, root, parsers)
        if parsed is None:
            continue
        if any(f.name == parsed.name for f in fields):
            continue
        fields.append(parsed)
        processed.add(name)

    # 打刻処理は出勤・退勤時刻を必ず使うため、見つからなければ補う
    names = {f.name for f in fields}
    if CLOCK_IN_FIELD not in names:
        fields.append(
            ClockField(
                name=CLOCK_IN_FIELD,
                type="time",
                required=False,
                label="Clock In Time",
                default_value=DEFAULT_CLOCK_IN,
            )
        )
    if CLOCK_OUT_FIELD not in names:
        fields.append(
            ClockField(
                name=CLOCK_OUT_FIELD,
                type="time",
                required=False,
                label="Clock Out Time",
                default_value=DEFAULT_CLOCK_OUT,
            )
        )

    return fields


def generate_field_schema(fields: Sequence[ClockField]) -> str:
    """項目構成を比較用の文字列にする（順序に依存しない）"""
    parts = []
    for field in sorted(fields, key=lambda f: f.name):
        segments = [field.name, field.type, "required" if field.required else "optional"]
        if field.type == "select" and field.options:
            segments.append(f"options:{len(field.options)}")
        parts.append(":".join(segments))
    return SCHEMA_SEPARATOR.join(parts)


def has_field_schema_changed(fields: Sequence[ClockField], stored_schema: Optional[str]) -> bool:
    if not stored_schema:
        return True
    return generate_field_schema(fields) != stored_schema

from datetime import date

from bs4 import BeautifulSoup

from services.clock_fields import parse_clock_fields
from services.errors import PortalRequestError
from services.models import ModifyPageData, Spot


def _input_value(soup: BeautifulSoup, name: str) -> str:
    element = soup.find("input", attrs={"name": name})
    if element is None:
        return ""
    return (element.get("value") or "").strip()


def parse_modify_page(html: str) -> ModifyPageData:
    """打刻修正画面からトークン・ID・打刻場所・フォーム項目を取り出す"""
    soup = BeautifulSoup(html, "lxml")

    spots = []
    select = soup.find("select", attrs={"name": "group_id"})
    if select is not None:
        for option in select.find_all("option"):
            spot_id = (option.get("value") or "").strip()
            name = option.get_text(strip=True)
            if spot_id and name:
                spots.append(Spot(id=spot_id, name=name))

    return ModifyPageData(
        token=_input_value(soup, "token"),
        client_id=_input_value(soup, "client_id"),
        employee_id=_input_value(soup, "employee_id"),
        available_spots=spots,
        form_fields=parse_clock_fields(html),
    )


async def fetch_modify_page(fetcher, target: date) -> ModifyPageData:
    """対象日の打刻修正画面を取得して解析する（スナップショットなのでキャッシュしない）"""
    response = await fetcher.get(
        f"{fetcher.app_base_url}/employee/adit/modify",
        params={"year": str(target.year), "month": str(target.month), "day": str(target.day)},
    )
    if not response.is_success:
        raise PortalRequestError(
            f"打刻修正画面の取得に失敗しました（HTTP {response.status_code}）: {target.isoformat()}"
        )
    return parse_modify_page(response.text)

"""Shared fixtures: page snapshots and a scripted fetcher that never touches the network."""

import asyncio
import json

import pytest

from errors import NetworkError
from page_fetcher import FetchResult, PageFetcher, RawResponse

BASE_URL = "https://game.test/eu1/"


# ---------------------------------------------------------------------------
# Page snapshots
# ---------------------------------------------------------------------------

EMPLOYEES_HTML = """
<div class="portlet light bordered">
  <div class="portlet-title"><div class="caption"><span class="caption-subject">Truckers (3)</span></div></div>
  <div class="portlet-body"><table class="table"><tbody>
    <tr><td><img src="avatar.png"></td><td><a href="index.php?a=employees_select&e=101">Anna</a></td>
        <td>$1,200</td><td>Berlin</td><td>45%</td><td>Yes</td><td>Nothing</td><td>Yes</td><td>0</td></tr>
    <tr><td></td><td><a href="index.php?a=employees_select&e=102">Bob</a></td>
        <td>$1,100</td><td>Paris</td><td>45%</td><td>Yes</td><td>Driving</td><td>No</td><td>0</td></tr>
    <tr><td></td><td><a href="index.php?a=employees_select&e=103">Cara</a></td>
        <td>$900</td><td>Rome</td><td>100%</td><td>Yes</td><td>Nothing</td><td>Yes</td><td>0</td></tr>
    <tr><td colspan="9">Hire more truckers</td></tr>
  </tbody></table></div>
</div>
<div class="portlet light bordered">
  <div class="portlet-title"><div class="caption"><span class="caption-subject">Warehouse Employees (1)</span></div></div>
  <div class="portlet-body"><table class="table"><tbody>
    <tr><td></td><td><a href="index.php?a=employees_select&e=201">Dan</a></td>
        <td>$800</td><td>Berlin</td><td>20%</td><td>Nothing</td><td>Yes</td><td>3</td></tr>
  </tbody></table></div>
</div>
<div class="portlet light bordered">
  <div class="portlet-title"><div class="caption"><span class="caption-subject">Applicants</span></div></div>
  <table class="table"><tbody>
    <tr><td><a href="index.php?a=employees_select&e=999">Eve</a></td></tr>
  </tbody></table>
</div>
"""

GARAGE_HTML = """
<div class="portlet light">
  <div class="portlet-title"><div class="caption">Trucks</div></div>
  <div class="portlet-body">
    <div class="mt-action">
      <span class="mt-action-author">Volvo FH16</span>
      <button onclick="location.href='index.php?a=garage_truck&t=501'">Information</button>
      <div class="row static-info"><div class="name">Location:</div><div class="value">Berlin</div></div>
      <div class="row static-info"><div class="name">Mileage:</div><div class="value">12,000 km</div></div>
    </div>
    <div class="mt-action"><span class="mt-action-author">Sold truck</span></div>
  </div>
</div>
<div class="portlet light">
  <div class="portlet-title"><div class="caption">Trailers</div></div>
  <div class="portlet-body">
    <div class="mt-action">
      <a href="#">Krone Cool Liner</a>
      <button onclick="location.href='index.php?a=garage_trailer&t=601'">Information</button>
    </div>
  </div>
</div>
"""

TRUCK_DETAIL_HTML = """
<div id="condition"></div>
<script>new ProgressBar('condition', 0, 100, 87);</script>
<div id="tirecondition"></div>
<script>new ProgressBar('tirecondition', 0, 100, 64);</script>
<span class="label label-warning">Summer tires</span>
"""

TRAILER_DETAIL_HTML = """
<script>new ProgressBar('condition', 0, 100, 100);</script>
"""

FUEL_HTML = """
<table>
<tbody id="truck-2809719">
  <tr><td><a href="index.php?a=fuelstation&t=2809719">Scania R450</a></td></tr>
  <tr><td><span id="fuel2809719"><script>new ProgressBar('fuel2809719', 0, 520, 26);</script></span></td></tr>
</tbody>
<tbody id="truck-2809720">
  <tr><td><a href="index.php?a=fuelstation">MAN TGX</a></td></tr>
  <tr><td><span id="fuel2809720"><script>new ProgressBar('fuel2809720', 0, 520, 520);</script></span></td></tr>
</tbody>
<tbody id="truck-2809721">
  <tr><td><a href="index.php?a=fuelstation">DAF XF</a></td></tr>
  <tr><td><span id="fuel2809721">unavailable</span></td></tr>
</tbody>
</table>
"""

TRIPS_HTML = """
<table id="rectrips"><tbody>
  <tr><td><input type="radio" name="trip" value="919"></td><td>$12,345.50</td>
      <td><img src="de.png"> Berlin</td><td><img src="fr.png"> Paris</td><td>1,050 km</td>
      <td></td><td></td><td></td><td><span><img src="type.png"> Default</span></td></tr>
  <tr><td><input type="radio" name="trip" value="920"></td><td>$99,000</td>
      <td>Rome</td><td>Madrid</td><td>1,950 km</td>
      <td></td><td></td><td></td><td><span>Express</span></td></tr>
  <tr><td><input type="radio" name="trip" value=""></td><td>$10</td>
      <td>Oslo</td><td>Bergen</td><td>460 km</td>
      <td></td><td></td><td></td><td><span>Default</span></td></tr>
  <tr><td colspan="9">Loading more trips...</td></tr>
</tbody></table>
"""

FREIGHT_HTML = """
<h1 class="page-title">Freight #919 <small>overview</small></h1>
<div class="portlet light">
  <div class="portlet-title">Freight Details</div>
  <div class="row static-info"><div class="name">Departure:</div><div class="value">Berlin</div></div>
  <div class="row static-info"><div class="name">Cargo:</div><div class="value">Pallets
     (22)</div></div>
</div>
<div class="portlet light">
  <div class="portlet-title">Financial Overview</div>
  <table class="table table-bordered"><tbody>
    <tr><td>Freight income</td><td>Paid</td><td>$1,000</td><td>1</td><td>$1,000</td></tr>
    <tr><td>Fuel</td><td>Pending</td><td>$200</td><td>2</td><td>$400</td></tr>
    <tr><td colspan="5">Total</td></tr>
  </tbody></table>
</div>
<span class="badge">0 available</span>
<span class="label">drive</span>
<button onclick="freightAction('ajax/freight_random.php?n=919')">Random</button>
<a href="index.php?a=freight_load&n=919" class="btn">Load</a>
<button onclick="freightAction('ajax/freight_drive.php?n=919')">Drive</button>
<a href="index.php?a=garage">Garage</a>
"""

FREIGHT_IDLE_HTML = """
<h1 class="page-title">Freight #920</h1>
<span class="badge">2 available</span>
<a href="index.php?a=garage">Garage</a>
"""

WAREHOUSE_HTML = """
<table><tbody id="tbody-available">
  <tr><td class="hidden-xs">#919</td><td class="hidden-xs">$1,500</td>
      <td class="visible-sm"><img src="de.png"> Berlin</td><td class="visible-sm">Paris</td>
      <td>1,050 km</td><td class="hidden-xs"><span><img src="t.png">Default</span></td></tr>
  <tr><td class="hidden-xs">#920</td><td class="hidden-xs">$900</td>
      <td class="visible-sm">Rome</td><td class="visible-sm">Madrid</td>
      <td>1,950 km</td><td class="hidden-xs"><span>Default</span></td></tr>
  <tr><td colspan="6">No more freight</td></tr>
</tbody></table>
"""


def json_body(**payload) -> str:
    return json.dumps(payload)


# ---------------------------------------------------------------------------
# Scripted fetcher
# ---------------------------------------------------------------------------

class FakeFetcher(PageFetcher):
    """
    Answers requests from a route table instead of the network.

    ``routes`` maps a URL substring to a response body (str), a ``RawResponse``
    or a ``NetworkError``; the first matching key in insertion order wins.
    ``delays`` maps URL substrings to seconds to wait before answering.
    Every request is recorded in ``events`` as ("start"|"end", method, url).
    """

    def __init__(self, routes=None, delays=None):
        super().__init__(session=None, base_url=BASE_URL)
        self.routes = dict(routes or {})
        self.delays = dict(delays or {})
        self.requests = []
        self.events = []

    def _match(self, table, url):
        for key, value in table.items():
            if key in url:
                return value
        return None

    async def fetch(self, request):
        url = self.resolve(request.url)
        self.requests.append(request)
        self.events.append(("start", request.method, url))
        delay = self._match(self.delays, url)
        if delay:
            await asyncio.sleep(delay)
        else:
            await asyncio.sleep(0)
        self.events.append(("end", request.method, url))

        answer = self._match(self.routes, url)
        if answer is None:
            return FetchResult(response=RawResponse(status=404, text="Not found", url=url))
        if isinstance(answer, NetworkError):
            return FetchResult(error=answer)
        if isinstance(answer, RawResponse):
            return FetchResult(response=answer)
        return FetchResult(response=RawResponse(status=200, text=answer, url=url))

    def urls(self, method=None):
        return [self.resolve(r.url) for r in self.requests if method is None or r.method == method]


@pytest.fixture()
def fake_fetcher():
    def factory(routes=None, delays=None):
        return FakeFetcher(routes, delays)
    return factory

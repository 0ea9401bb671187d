import datetime as dt
import unittest

import requests

from weather_sync.data_sources import open_meteo_client
from weather_sync.data_sources.open_meteo_client import OpenMeteoClient, _months_before
from weather_sync.errors import (
    HttpClientError,
    HttpServerError,
    InvalidResponseError,
    RateLimited,
    TransportError,
)


class DummyResp:
    def __init__(self, payload, status_code=200, reason="OK"):
        self._payload = payload
        self.status_code = status_code
        self.reason = reason

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class RecordingSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.requests.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def _current_payload():
    return {
        "latitude": 51.5,
        "longitude": -0.12,
        "timezone": "Europe/London",
        "current": {
            "time": "2024-01-01T12:00",
            "temperature_2m": 10.0,
            "relative_humidity_2m": 50.0,
            "apparent_temperature": 9.0,
            "is_day": 1,
            "precipitation": 0.4,
            "rain": 0.4,
            "showers": 0.0,
            "snowfall": 0.0,
            "weather_code": 61,
            "cloud_cover": 90.0,
            "pressure_msl": 1008.0,
            "surface_pressure": 1000.0,
            "wind_speed_10m": 5.0,
            "wind_direction_10m": 180.0,
            "wind_gusts_10m": 6.0,
            "unexpected_field": "ignored",
        },
        "daily": {
            "time": ["2024-01-01"],
            "sunrise": ["2024-01-01T08:06"],
            "sunset": ["2024-01-01T16:02"],
        },
    }


def _forecast_payload():
    return {
        "latitude": 51.5,
        "longitude": -0.12,
        "timezone": "Europe/London",
        "daily": {
            "time": ["2024-01-01", "2024-01-02"],
            "weather_code": [3, 71],
            "temperature_2m_max": [9.0, 2.0],
            "temperature_2m_min": [4.0, -1.0],
            "apparent_temperature_max": [7.0, 0.0],
            "apparent_temperature_min": [2.0, -4.0],
            "sunrise": ["2024-01-01T08:06", "2024-01-02T08:06"],
            "sunset": ["2024-01-01T16:02", "2024-01-02T16:03"],
            "uv_index_max": [0.8, 0.5],
            "precipitation_sum": [0.0, 4.0],
            "rain_sum": [0.0, 1.0],
            "showers_sum": [0.0, 0.0],
            "snowfall_sum": [0.0, 3.0],
            "precipitation_hours": [0.0, 2.0],
            "precipitation_probability_max": [5.0, 80.0],
            "wind_speed_10m_max": [12.0, 20.0],
            "wind_gusts_10m_max": [20.0, 35.0],
            "wind_direction_10m_dominant": [200, 10],
        },
    }


def _archive_payload():
    return {
        "latitude": 51.5,
        "longitude": -0.12,
        "timezone": "Europe/London",
        "daily": {
            "time": ["2023-11-29", "2023-11-30", "2023-12-01"],
            "temperature_2m_mean": [5.0, 7.0, 3.0],
            "temperature_2m_max": [8.0, 10.0, 6.0],
            "temperature_2m_min": [2.0, 4.0, None],
            "precipitation_sum": [0.5, 3.0, 1.0],
            "wind_speed_10m_max": [10.0, 20.0, 15.0],
        },
    }


class OpenMeteoTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._orig_session = open_meteo_client.session
        self.client = OpenMeteoClient(today=lambda: dt.date(2024, 3, 15))

    def tearDown(self):
        open_meteo_client.session = self._orig_session

    def use(self, session):
        open_meteo_client.session = session
        return session


class TestOpenMeteoTransforms(OpenMeteoTestCase):
    async def test_current_weather(self):
        session = self.use(RecordingSession(DummyResp(_current_payload())))

        current = await self.client.get_current_weather(51.5, -0.12)

        self.assertEqual(current.temperature, 10.0)
        self.assertEqual(current.feels_like, 9.0)
        self.assertEqual(current.pressure, 1008.0)
        self.assertEqual(current.precipitation.type, "rain")
        self.assertEqual(current.precipitation.intensity, 0.4)
        self.assertEqual(current.sunrise, "2024-01-01T08:06")
        self.assertEqual(current.weather_code, 61)

        sent = session.requests[0]
        self.assertTrue(sent["url"].endswith("/forecast"))
        self.assertEqual(sent["params"]["latitude"], 51.5)
        self.assertIn("temperature_2m", sent["params"]["current"])
        self.assertEqual(sent["headers"]["Accept"], "application/json")

    async def test_weekly_forecast(self):
        session = self.use(RecordingSession(DummyResp(_forecast_payload())))

        weekly = await self.client.get_weekly_forecast(51.5, -0.12)

        self.assertEqual(len(weekly.daily), 2)
        self.assertEqual(weekly.timezone, "Europe/London")
        self.assertEqual(weekly.location, "51.5, -0.12")
        snowy = weekly.daily[1]
        self.assertEqual(snowy.temp_min, -1.0)
        self.assertEqual(snowy.precipitation.type, "mixed")
        self.assertEqual(snowy.precipitation.probability, 80.0)
        self.assertEqual(snowy.precipitation.rate, 2.0)
        self.assertEqual(session.requests[0]["params"]["forecast_days"], 10)

    async def test_historical_groups_days_into_months(self):
        session = self.use(RecordingSession(DummyResp(_archive_payload())))

        historical = await self.client.get_historical_data(51.5, -0.12, 24)

        self.assertEqual([m.month for m in historical.monthly], ["2023-11", "2023-12"])
        november = historical.monthly[0]
        self.assertEqual(november.year, 2023)
        self.assertEqual(november.temp_mean, 6.0)
        self.assertEqual(november.precipitation_total, 3.5)
        self.assertEqual(november.precipitation_days, 1)
        self.assertIsNone(historical.monthly[1].temp_min)
        self.assertEqual(historical.start_date, "2023-11-29")
        self.assertEqual(historical.end_date, "2023-12-01")

        params = session.requests[0]["params"]
        self.assertTrue(session.requests[0]["url"].endswith("/archive"))
        self.assertEqual(params["end_date"], "2024-03-08")
        self.assertEqual(params["start_date"], "2022-03-08")

    async def test_search_locations(self):
        payload = {
            "results": [
                {
                    "name": "Paris",
                    "latitude": 48.85,
                    "longitude": 2.35,
                    "country": "France",
                    "timezone": "Europe/Paris",
                    "admin1": "Île-de-France",
                }
            ]
        }
        session = self.use(RecordingSession(DummyResp(payload)))

        [paris] = await self.client.search_locations("Paris")

        self.assertEqual(paris.id, "48.85-2.35")
        self.assertEqual(paris.region, "Île-de-France")
        self.assertEqual(session.requests[0]["params"]["count"], 10)
        self.assertEqual(session.requests[0]["params"]["language"], "en")

    async def test_search_without_results_key(self):
        self.use(RecordingSession(DummyResp({"generationtime_ms": 0.5})))
        self.assertEqual(await self.client.search_locations("zzzz"), [])

    async def test_blank_search_makes_no_request(self):
        session = self.use(RecordingSession(DummyResp({})))
        self.assertEqual(await self.client.search_locations(" "), [])
        self.assertEqual(session.requests, [])


class TestOpenMeteoErrors(OpenMeteoTestCase):
    async def test_timeout_maps_to_transport_error(self):
        self.use(RecordingSession(error=requests.Timeout("slow")))
        with self.assertRaises(TransportError) as ctx:
            await self.client.get_current_weather(0, 0)
        self.assertTrue(ctx.exception.timeout)
        self.assertEqual(ctx.exception.code, "TIMEOUT")
        self.assertIsNone(ctx.exception.status)

    async def test_connection_error_maps_to_transport_error(self):
        self.use(RecordingSession(error=requests.ConnectionError("refused")))
        with self.assertRaises(TransportError) as ctx:
            await self.client.get_current_weather(0, 0)
        self.assertFalse(ctx.exception.timeout)

    async def test_status_codes_map_to_error_classes(self):
        cases = [(404, HttpClientError), (429, RateLimited), (503, HttpServerError)]
        for status, expected in cases:
            with self.subTest(status=status):
                self.use(RecordingSession(DummyResp({}, status_code=status, reason="Nope")))
                with self.assertRaises(expected) as ctx:
                    await self.client.get_weekly_forecast(0, 0)
                self.assertEqual(ctx.exception.status, status)

    async def test_bad_json_is_invalid_response(self):
        self.use(RecordingSession(DummyResp(ValueError("not json"))))
        with self.assertRaises(InvalidResponseError):
            await self.client.get_current_weather(0, 0)

    async def test_schema_mismatch_is_invalid_response(self):
        payload = _forecast_payload()
        payload["daily"]["temperature_2m_max"] = [9.0]
        self.use(RecordingSession(DummyResp(payload)))
        with self.assertRaises(InvalidResponseError) as ctx:
            await self.client.get_weekly_forecast(0, 0)
        self.assertEqual(ctx.exception.code, "INVALID_RESPONSE")

    async def test_missing_current_block_is_invalid_response(self):
        self.use(RecordingSession(DummyResp({"latitude": 0, "longitude": 0})))
        with self.assertRaises(InvalidResponseError):
            await self.client.get_current_weather(0, 0)

    async def test_injected_session_overrides_module_session(self):
        injected = RecordingSession(DummyResp(_current_payload()))
        self.use(RecordingSession(error=AssertionError("module session should not be used")))
        client = OpenMeteoClient(http_session=injected)

        await client.get_current_weather(1, 2)

        self.assertEqual(len(injected.requests), 1)


class TestMonthsBefore(unittest.TestCase):
    def test_clamps_to_month_length(self):
        self.assertEqual(_months_before(dt.date(2024, 3, 31), 1), dt.date(2024, 2, 29))
        self.assertEqual(_months_before(dt.date(2023, 3, 31), 1), dt.date(2023, 2, 28))
        self.assertEqual(_months_before(dt.date(2024, 1, 15), 24), dt.date(2022, 1, 15))


if __name__ == "__main__":
    unittest.main()

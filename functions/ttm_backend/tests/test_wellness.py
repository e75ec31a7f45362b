import unittest

from ttm_backend.db import InMemoryDbClient
from ttm_backend.errors import NotFoundError, ValidationFailed
from ttm_backend.services import patients, wellness

RATINGS = {
    "overall_feeling": 3,
    "symptom_improvement": 4,
    "treatment_satisfaction": 4,
    "energy_levels": 5,
    "sleep_quality": 4,
}

DAY = 86400
MARCH_5_2026 = 1772668800.0


class WellnessTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.patient = patients.create_patient(self.db, "prac-1", {"full_name": "Malee"})

    def _survey(self, created_at, **ratings):
        values = {**RATINGS, **ratings, "created_at": created_at}
        return wellness.submit_survey(self.db, self.patient["id"], values)

    def test_survey_average(self):
        self.assertEqual(wellness.survey_average(RATINGS), 4.0)
        self.assertEqual(wellness.survey_average({**RATINGS, "energy_levels": 4}), 3.8)

    def test_average_rounds_half_up(self):
        surveys = [
            {**RATINGS, "overall_feeling": 1},
            {**RATINGS, "overall_feeling": 2},
            {**RATINGS, "overall_feeling": 2},
            {**RATINGS, "overall_feeling": 2},
        ]
        # 7 / 4 = 1.75
        self.assertEqual(wellness.dimension_averages(surveys)["overall_feeling"], 1.8)

    def test_empty_averages_are_zero(self):
        averages = wellness.dimension_averages([])
        self.assertEqual(set(averages), set(wellness.DIMENSIONS))
        self.assertTrue(all(value == 0.0 for value in averages.values()))

    def test_ratings_must_be_whole_numbers_in_range(self):
        with self.assertRaises(ValidationFailed):
            wellness.submit_survey(self.db, self.patient["id"], {**RATINGS, "sleep_quality": 6})
        with self.assertRaises(ValidationFailed):
            wellness.submit_survey(self.db, self.patient["id"], {**RATINGS, "sleep_quality": 3.5})
        with self.assertRaises(NotFoundError):
            wellness.submit_survey(self.db, "missing", RATINGS)

    def test_trend_series_filters_and_orders(self):
        self._survey(MARCH_5_2026 + 2 * DAY, overall_feeling=5)
        self._survey(MARCH_5_2026)
        self._survey(MARCH_5_2026 + 10 * DAY)

        points = wellness.trend_series(
            wellness.list_surveys(self.db, self.patient["id"]), end=MARCH_5_2026 + 3 * DAY
        )
        self.assertEqual([p["date"] for p in points], ["Mar 05", "Mar 07"])
        self.assertEqual(points[1]["overall_feeling"], 5)
        self.assertEqual(points[0]["average"], 4.0)

    def test_chart_and_report_render(self):
        self._survey(MARCH_5_2026)
        self._survey(MARCH_5_2026 + DAY, sleep_quality=2)
        points = wellness.trend_series(wellness.list_surveys(self.db, self.patient["id"]))

        png = wellness.render_trend_chart(points)
        self.assertTrue(png.startswith(b"\x89PNG"))

        pdf = wellness.wellness_report(self.db, self.patient["id"])
        self.assertTrue(pdf.startswith(b"%PDF"))

    def test_chart_without_data_is_rejected(self):
        with self.assertRaises(ValidationFailed):
            wellness.render_trend_chart([])

    def test_score_labels(self):
        self.assertEqual(wellness.score_label(1), "Much Worse")
        self.assertEqual(wellness.score_label(5), "Much Better")


if __name__ == "__main__":
    unittest.main()

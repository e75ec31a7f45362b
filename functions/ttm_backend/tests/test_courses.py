import unittest

from ttm_backend.db import InMemoryDbClient
from ttm_backend.errors import ConflictError, NotFoundError, ValidationFailed
from ttm_backend.services import courses
from ttm_backend.storage import InMemoryStorageClient


class CourseBuilderTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.course = courses.create_course(self.db, {"title": "Thai Massage Basics"}, "prac-1")
        self.sections = [
            courses.add_section(self.db, self.course["id"], {"title": title})
            for title in ("Intro", "Techniques", "Practice")
        ]

    def _titles(self, rows):
        return [row["title"] for row in rows]

    def _orders(self, rows):
        return [row["display_order"] for row in rows]

    def test_sections_get_sequential_order(self):
        self.assertEqual(self._orders(self.sections), [0, 1, 2])

    def test_move_section_keeps_order_compact(self):
        moved = courses.move_section(self.db, self.sections[2]["id"], 0)
        self.assertEqual(self._titles(moved), ["Practice", "Intro", "Techniques"])
        self.assertEqual(self._orders(moved), [0, 1, 2])

    def test_move_section_clamps_index(self):
        moved = courses.move_section(self.db, self.sections[0]["id"], 99)
        self.assertEqual(self._titles(moved), ["Techniques", "Practice", "Intro"])

    def test_delete_section_recompacts(self):
        courses.add_lesson(self.db, self.sections[1]["id"], {"title": "Thumb pressure"})
        courses.delete_section(self.db, self.sections[1]["id"])
        structure = courses.fetch_course_structure(self.db, self.course["id"])
        self.assertEqual(self._titles(structure["sections"]), ["Intro", "Practice"])
        self.assertEqual(self._orders(structure["sections"]), [0, 1])
        self.assertEqual(structure["lessons"], [])

    def test_move_lesson_within_section(self):
        section_id = self.sections[0]["id"]
        lessons = [
            courses.add_lesson(self.db, section_id, {"title": title}) for title in ("A", "B", "C")
        ]
        result = courses.move_lesson(self.db, lessons[0]["id"], section_id, 2)
        self.assertEqual(self._titles(result["target"]), ["B", "C", "A"])
        self.assertEqual(self._orders(result["target"]), [0, 1, 2])

    def test_move_lesson_across_sections(self):
        source_id, target_id = self.sections[0]["id"], self.sections[1]["id"]
        a = courses.add_lesson(self.db, source_id, {"title": "A"})
        courses.add_lesson(self.db, source_id, {"title": "B"})
        courses.add_lesson(self.db, target_id, {"title": "X"})
        courses.add_lesson(self.db, target_id, {"title": "Y"})

        result = courses.move_lesson(self.db, a["id"], target_id, 1)
        self.assertEqual(self._titles(result["source"]), ["B"])
        self.assertEqual(self._orders(result["source"]), [0])
        self.assertEqual(self._titles(result["target"]), ["X", "A", "Y"])
        self.assertEqual(self._orders(result["target"]), [0, 1, 2])

    def test_move_lesson_without_index_appends(self):
        source_id, target_id = self.sections[0]["id"], self.sections[1]["id"]
        a = courses.add_lesson(self.db, source_id, {"title": "A"})
        courses.add_lesson(self.db, target_id, {"title": "X"})
        result = courses.move_lesson(self.db, a["id"], target_id)
        self.assertEqual(self._titles(result["target"]), ["X", "A"])

    def test_move_lesson_to_other_course_rejected(self):
        other = courses.create_course(self.db, {"title": "Herbal Compress"})
        other_section = courses.add_section(self.db, other["id"], {"title": "Only"})
        lesson = courses.add_lesson(self.db, self.sections[0]["id"], {"title": "A"})
        with self.assertRaises(ValidationFailed):
            courses.move_lesson(self.db, lesson["id"], other_section["id"], 0)

    def test_format_duration(self):
        self.assertEqual(courses.format_duration(None), "—")
        self.assertEqual(courses.format_duration(0), "—")
        self.assertEqual(courses.format_duration(65), "1:05")
        self.assertEqual(courses.format_duration(600), "10:00")


class LearningTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.course = courses.create_course(
            self.db, {"title": "Herbal Basics", "is_published": True}
        )
        section = courses.add_section(self.db, self.course["id"], {"title": "Week 1"})
        self.lessons = [
            courses.add_lesson(self.db, section["id"], {"title": t, "is_published": True})
            for t in ("One", "Two", "Three")
        ]
        courses.add_lesson(self.db, section["id"], {"title": "Draft", "is_published": False})
        self.enrollment = courses.enroll(self.db, self.course["id"], "user-1")

    def test_enroll_is_idempotent(self):
        again = courses.enroll(self.db, self.course["id"], "user-1")
        self.assertEqual(again["id"], self.enrollment["id"])

    def test_progress_rounds_half_up(self):
        self.assertEqual(courses.progress_percentage(1, 8), 13.0)
        self.assertEqual(courses.progress_percentage(1, 3), 33.0)
        self.assertEqual(courses.progress_percentage(0, 0), 0.0)
        self.assertEqual(courses.progress_percentage(5, 4), 100.0)

    def test_completion_counts_published_lessons_only(self):
        enrollment_id = self.enrollment["id"]
        updated = courses.complete_lesson(self.db, enrollment_id, self.lessons[0]["id"])
        self.assertEqual(updated["progress_percentage"], 33.0)
        self.assertIsNone(updated["completed_at"])

        state = courses.learning_state(self.db, enrollment_id)
        self.assertEqual(state["total_lessons"], 3)
        self.assertEqual(state["next_lesson"]["title"], "Two")

        with self.assertRaises(ConflictError):
            courses.issue_certificate(self.db, self.storage, enrollment_id)

        for lesson in self.lessons[1:]:
            updated = courses.complete_lesson(self.db, enrollment_id, lesson["id"])
        self.assertEqual(updated["progress_percentage"], 100.0)
        self.assertIsNotNone(updated["completed_at"])

    def test_certificate_issue_and_verify(self):
        for lesson in self.lessons:
            courses.complete_lesson(self.db, self.enrollment["id"], lesson["id"])

        certificate = courses.issue_certificate(
            self.db, self.storage, self.enrollment["id"], "Malee S."
        )
        self.assertEqual(len(certificate["verification_code"]), 32)
        path = certificate["storage_path"]
        self.assertTrue(self.storage.read(path).startswith(b"%PDF"))
        self.assertIn(path, certificate["download_url"])

        again = courses.issue_certificate(self.db, self.storage, self.enrollment["id"])
        self.assertEqual(again["verification_code"], certificate["verification_code"])
        self.assertEqual(again["recipient_name"], "Malee S.")

        verified = courses.verify_certificate(self.db, certificate["verification_code"].upper())
        self.assertEqual(verified["course_title"], "Herbal Basics")
        with self.assertRaises(NotFoundError):
            courses.verify_certificate(self.db, "0" * 32)

    def test_record_position_tracks_time(self):
        courses.record_position(self.db, self.enrollment["id"], self.lessons[0]["id"], 90)
        courses.record_position(self.db, self.enrollment["id"], self.lessons[0]["id"], 120)
        state = courses.learning_state(self.db, self.enrollment["id"])
        self.assertEqual(state["time_spent_seconds"], 120)

    def test_record_position_rejects_lessons_from_other_courses(self):
        other = courses.create_course(self.db, {"title": "Massage", "is_published": True})
        section = courses.add_section(self.db, other["id"], {"title": "Intro"})
        stray = courses.add_lesson(self.db, section["id"], {"title": "Stray", "is_published": True})

        with self.assertRaises(ValidationFailed):
            courses.record_position(self.db, self.enrollment["id"], stray["id"], 300)
        with self.assertRaises(NotFoundError):
            courses.record_position(self.db, self.enrollment["id"], "missing", 300)
        state = courses.learning_state(self.db, self.enrollment["id"])
        self.assertEqual(state["time_spent_seconds"], 0)


if __name__ == "__main__":
    unittest.main()

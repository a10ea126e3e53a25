"""Tests for the profile, pathway and recommendation data layer."""

import crud
from models import EducationPathway, Program, ProgramScholarship, Recommendation

PATHWAY = {
    "title": "Data Science in Europe",
    "qualification_type": "Masters",
    "field_of_study": "Data Science",
    "budget_range_usd": {"min": 0, "max": 20000},
    "duration_months": {"min": 12, "max": 24},
}


class TestProfiles:
    def test_missing_fields_for_complete_profile(self, profile) -> None:
        assert crud.find_missing_profile_fields(profile) == []

    def test_missing_fields_are_named(self, db_session, profile) -> None:
        profile.education = []
        profile.career_goals = {"shortTerm": "", "longTerm": ""}
        db_session.commit()

        missing = crud.find_missing_profile_fields(profile)

        assert missing == ["education history", "career goals"]
        assert crud.find_missing_profile_fields(None) == ["profile"]

    def test_format_profile_fills_defaults(self, db_session, profile) -> None:
        profile.skills = None
        db_session.commit()

        data = crud.format_profile(profile)

        assert data["userId"] == "user-1"
        assert data["skills"] == []
        assert data["vectorStoreId"] == "vs_1"

    def test_delete_profile_returns_vector_store(self, db_session, recommendation) -> None:
        assert crud.delete_profile(db_session, "user-1") == "vs_1"
        assert crud.get_profile(db_session, "user-1") is None
        assert db_session.query(Recommendation).count() == 0

    def test_delete_absent_profile(self, db_session) -> None:
        assert crud.delete_profile(db_session, "nobody") is None


class TestStoreRecommendation:
    def test_program_is_matched_case_insensitively(self, db_session, recommendation) -> None:
        stored = crud.store_recommendation(
            db_session, "user-1", {"name": "msc data engineering", "institution": "tu munich", "match_score": 91},
        )

        assert stored.id == "rec1"
        assert stored.program_id == "prog1"
        assert stored.match_score == 91
        assert db_session.query(Program).count() == 1

    def test_scholarships_are_replaced(self, db_session, program_payload) -> None:
        crud.store_recommendation(db_session, "user-1", program_payload)
        program_payload["scholarships"] = [{"name": "Holland Scholarship", "amount": 5000}]

        crud.store_recommendation(db_session, "user-1", program_payload)

        rows = db_session.query(ProgramScholarship).all()
        assert [(r.name, r.amount) for r in rows] == [("Holland Scholarship", "5000")]

    def test_batch_reports_invalid_programs(self, db_session, program_payload) -> None:
        result = crud.store_programs_batch(db_session, "user-1", None, [program_payload, {"name": "No institution"}])

        assert len(result["saved_ids"]) == 1
        assert result["rejected"][0]["error"] == "Program name and institution are required"


class TestRecommendationLookups:
    def test_infer_prefers_favorite(self, db_session, recommendation, program_payload) -> None:
        crud.store_recommendation(db_session, "user-1", program_payload)

        assert crud.infer_recommendation_id(db_session, "user-1") == "rec1"

    def test_infer_without_favorites(self, db_session, recommendation) -> None:
        recommendation.is_favorite = False
        db_session.commit()

        assert crud.infer_recommendation_id(db_session, "user-1") == "rec1"
        assert crud.infer_recommendation_id(db_session, "user-2") is None

    def test_search_matches_name_or_institution(self, db_session, recommendation) -> None:
        assert [r.id for r in crud.search_recommendations(db_session, "user-1", institution="munich")] == ["rec1"]
        assert [r.id for r in crud.search_recommendations(db_session, "user-1", name="data eng")] == ["rec1"]
        assert crud.search_recommendations(db_session, "user-1", name="Law") == []
        assert crud.search_recommendations(db_session, "user-1") == []

    def test_search_is_scoped_to_user(self, db_session, recommendation) -> None:
        assert crud.search_recommendations(db_session, "user-2", institution="TU Munich") == []

    def test_recommendation_file_is_scoped_to_user(self, db_session, recommendation) -> None:
        crud.save_recommendation_file(db_session, "rec1", "file_rec1", "rec1.json")

        assert crud.get_recommendation_file(db_session, "rec1", "user-1").file_id == "file_rec1"
        assert crud.get_recommendation_file(db_session, "rec1", "user-2") is None


class TestPathways:
    def test_batch_preserves_order(self, db_session) -> None:
        rows = crud.create_education_pathways(
            db_session, "user-1", [dict(PATHWAY, title="First"), dict(PATHWAY, title="Second")],
        )

        assert [r.title for r in rows] == ["First", "Second"]
        assert crud.pathway_to_dict(rows[0])["budget_range_usd"] == {"min": 0, "max": 20000}

    def test_soft_delete_keeps_favorites(self, db_session, recommendation, program_payload) -> None:
        pathway = crud.create_pathway(db_session, "user-1", PATHWAY)
        recommendation.pathway_id = pathway.id
        db_session.commit()
        other = crud.store_recommendation(db_session, "user-1", program_payload, pathway_id=pathway.id)
        other_id = other.id

        crud.delete_pathway(db_session, pathway, feedback={"reason": "Too expensive"})

        assert db_session.query(EducationPathway).filter(EducationPathway.id == pathway.id).one().is_deleted is True
        remaining = [r.id for r in db_session.query(Recommendation).all()]
        assert remaining == ["rec1"]
        assert other_id not in remaining
        assert crud.get_user_pathways(db_session, "user-1") == []

    def test_deleted_pathway_feedback(self, db_session) -> None:
        pathway = crud.create_pathway(db_session, "user-1", PATHWAY)
        crud.delete_pathway(db_session, pathway, feedback={"reason": "Too expensive"})

        feedback = crud.get_deleted_pathway_feedback(db_session, "user-1")

        assert feedback == [{
            "pathwaySummary": "Data Science in Europe - Masters in Data Science",
            "feedback": {"reason": "Too expensive"},
        }]

    def test_reset_only_touches_own_pathways(self, db_session, recommendation) -> None:
        mine = crud.create_pathway(db_session, "user-1", PATHWAY)
        crud.create_pathway(db_session, "user-2", PATHWAY)
        recommendation.pathway_id = mine.id
        db_session.commit()
        crud.save_recommendation_file(db_session, "rec1", "file_rec1", "rec1.json")

        result = crud.reset_pathways(db_session, "user-1")

        assert result == {"deleted_pathways": 1, "deleted_programs": 1, "file_ids": ["file_rec1"]}
        assert [p.user_id for p in db_session.query(EducationPathway).all()] == ["user-2"]

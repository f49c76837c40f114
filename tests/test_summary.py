"""Tests for the deterministic summary synthesizer."""

from consultations.services.case_classifier import CATEGORY_LABELS, FAMILY, LABOR
from consultations.services.segmenter import segment_consultations
from consultations.services.summary import (
    CATEGORY_GUIDANCE,
    CATEGORY_QUESTIONS,
    EMPTY_SUMMARY,
    NO_GUIDANCE_FALLBACK,
    TECHNICAL_FAILURE_FALLBACK,
    build_consultation_summary,
    compact_line,
    pick_guidance_line,
    score_bot_line,
    to_summary_phrase,
)


def _segment(chat, lines):
    messages = [chat(i, direction, text, i) for i, (direction, text) in enumerate(lines, start=1)]
    return segment_consultations("conv", messages)[0]


class TestScoreBotLine:
    def test_length_is_capped(self):
        assert score_bot_line("x" * 40) == 40
        assert score_bot_line("x" * 300) == 120

    def test_transition_phrase_bonus(self):
        text = "Con lo que me cuentas"
        assert score_bot_line(text) == len(text) + 50

    def test_route_vocabulary_bonus_counts_once(self):
        text = "Debes acudir"
        assert score_bot_line(text) == len(text) + 25

    def test_enumeration_bonus(self):
        text = "1) a 2) b"
        assert score_bot_line(text) == len(text) + 10

    def test_clarifying_question_gets_no_route_bonus(self):
        text = "¿Qué pasó?"
        assert score_bot_line(text) == len(text)

    def test_steps_get_route_bonus(self):
        text = "Sigue estos pasos"
        assert score_bot_line(text) == len(text) + 25


class TestPickGuidanceLine:
    def test_prefers_substantive_over_filler(self):
        lines = [
            "Gracias por escribirnos, con gusto te ayudamos con todo lo que necesites el día de hoy",
            "Debes acudir",
        ]
        assert pick_guidance_line(lines) == "Debes acudir"

    def test_falls_back_to_filler(self):
        assert pick_guidance_line(["Con gusto"]) == "Con gusto"

    def test_ties_keep_first_occurrence(self):
        assert pick_guidance_line(["abcd", "wxyz"]) == "abcd"

    def test_highest_score_wins(self):
        lines = [
            "Entendido.",
            "Con lo que me cuentas, puedes empezar por 1) reunir documentos 2) acudir a conciliación",
        ]
        assert pick_guidance_line(lines) == lines[1]

    def test_technical_failures_are_never_chosen(self):
        assert pick_guidance_line(["Ocurrió un error al procesar tu mensaje"]) is None

    def test_error_in_legal_prose_is_not_a_failure(self):
        line = "Es un error común no reclamar a tiempo; debes acudir al Ministerio de Trabajo"
        assert pick_guidance_line([line]) == line
        assert pick_guidance_line(["Hubo un error técnico, inténtalo de nuevo más tarde"]) is None

    def test_no_lines(self):
        assert pick_guidance_line([]) is None


class TestSummaryPhrase:
    def test_strips_markdown_and_dashes(self):
        assert to_summary_phrase("**Debes** acudir - pronto • ya") == "Debes acudir pronto ya"

    def test_compact_line_truncates_with_ellipsis(self):
        result = compact_line("palabra " * 50, 40)
        assert len(result) == 40
        assert result.endswith("...")


class TestBuildConsultationSummary:
    def test_placeholder_without_content(self, chat):
        segment = _segment(chat, [("IN", "hola"), ("IN", "salir")])
        assert build_consultation_summary(segment) == EMPTY_SUMMARY

    def test_fixed_template(self, chat):
        segment = _segment(
            chat,
            [
                ("IN", "hola"),
                ("OUT", "¡Bienvenido al Consultorio Jurídico!"),
                ("IN", "necesito un divorcio"),
                ("IN", "tenemos dos hijos"),
                ("IN", "llevamos diez años casados"),
                ("IN", "ella vive en otra ciudad"),
                ("OUT", "Con lo que me cuentas, puedes empezar por solicitar una conciliación"),
                ("IN", "salir"),
            ],
        )

        lines = build_consultation_summary(segment).split("\n")

        assert lines[0] == "Consulta principal: necesito un divorcio."
        assert lines[1] == "Contexto adicional: tenemos dos hijos; llevamos diez años casados."
        assert lines[2] == (
            "Orientacion preliminar del asistente: "
            "Con lo que me cuentas, puedes empezar por solicitar una conciliación."
        )
        assert lines[3] == f"Area sugerida: {CATEGORY_LABELS[FAMILY]}"
        assert lines[4] == "Orientacion para el consultorio:"
        assert lines[5:7] == [f"- {bullet}" for bullet in CATEGORY_GUIDANCE[FAMILY]]
        assert lines[7] == "Preguntas de seguimiento:"
        assert lines[8:] == [f"{i}. {q}" for i, q in enumerate(CATEGORY_QUESTIONS[FAMILY], start=1)]

    def test_without_follow_ups_or_guidance(self, chat):
        segment = _segment(chat, [("IN", "hola"), ("IN", "me despidieron del trabajo")])

        lines = build_consultation_summary(segment).split("\n")

        assert lines[1] == "Contexto adicional: Sin contexto adicional."
        assert lines[2] == f"Orientacion preliminar del asistente: {NO_GUIDANCE_FALLBACK}."
        assert lines[3] == f"Area sugerida: {CATEGORY_LABELS[LABOR]}"

    def test_technical_failure_fallback(self, chat):
        segment = _segment(
            chat,
            [
                ("IN", "hola"),
                ("IN", "me despidieron del trabajo"),
                ("OUT", "Lo siento, ocurrió un error al procesar tu mensaje"),
            ],
        )

        summary = build_consultation_summary(segment)

        assert TECHNICAL_FAILURE_FALLBACK in summary
        assert NO_GUIDANCE_FALLBACK not in summary

    def test_guidance_mentioning_error_is_kept(self, chat):
        segment = _segment(
            chat,
            [
                ("IN", "hola"),
                ("IN", "me despidieron y no me pagaron la liquidación"),
                ("OUT", "Es un error común no reclamar a tiempo; debes acudir al Ministerio de Trabajo con tu contrato"),
            ],
        )

        summary = build_consultation_summary(segment)

        assert TECHNICAL_FAILURE_FALLBACK not in summary
        assert "debes acudir al Ministerio de Trabajo con tu contrato." in summary

    def test_boilerplate_is_not_guidance(self, chat):
        segment = _segment(
            chat,
            [
                ("IN", "hola"),
                ("IN", "me despidieron del trabajo"),
                ("OUT", "Si deseas agendar una cita con un estudiante, escribe agendar cita"),
            ],
        )

        assert NO_GUIDANCE_FALLBACK in build_consultation_summary(segment)

    def test_bot_only_content_uses_first_user_message(self, chat):
        segment = _segment(
            chat,
            [("IN", "hola"), ("OUT", "Debes acudir a la inspección de trabajo con tu contrato")],
        )

        assert build_consultation_summary(segment).startswith("Consulta principal: hola.")

    def test_explicit_category(self, chat):
        segment = _segment(chat, [("IN", "hola"), ("IN", "necesito un divorcio")])
        assert f"Area sugerida: {CATEGORY_LABELS[LABOR]}" in build_consultation_summary(segment, LABOR)

    def test_deterministic(self, chat):
        lines = [
            ("IN", "hola"),
            ("IN", "me despidieron"),
            ("OUT", "abcd"),
            ("OUT", "wxyz"),
        ]
        assert build_consultation_summary(_segment(chat, lines)) == build_consultation_summary(
            _segment(chat, lines)
        )

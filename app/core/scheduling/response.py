"""
Response Generator for the scheduling assistant.

All patient-facing text is produced from fixed pt-BR templates, so the
dialogue is fully predictable. An optional Claude pass may rephrase the
final text; it is bounded by a hard timeout and discarded whenever it drops
a number, date or time from the original.
"""

import asyncio
import logging
import re
from datetime import date
from typing import Optional

from app.config import settings
from app.infra.claude import ClaudeClient, ClaudeClientError, get_claude_client
from .slots import Slot, WEEKDAY_NAMES

logger = logging.getLogger(__name__)


HUMANIZE_SYSTEM_PROMPT = (
    "Você é um atendente cordial e objetivo de uma clínica médica. "
    "Reescreva a mensagem mantendo o sentido e a brevidade. "
    "Preserve exatamente todas as datas, horários, números, endereços "
    "e palavras entre aspas. Responda apenas com a mensagem reescrita."
)

# Facts that must survive a rewrite: times, dates, numbers, quoted keywords
_FACT_RE = re.compile(r'\d{1,2}:\d{2}|\d{1,2}/\d{1,2}(?:/\d{2,4})?|\d+|"[^"]+"')

REASON_EXAMPLES = "Ex.: Consulta, Vasectomia – avaliação, HPB/Próstata – avaliação, etc."


def format_day(day: date) -> str:
    """pt-BR day label: "quarta-feira, 21/10"."""
    return f"{WEEKDAY_NAMES[day.weekday()]}, {day:%d/%m}"


def _choice_list(count: int) -> str:
    """ "1", "1 ou 2", "1, 2 ou 3"."""
    numbers = [str(i) for i in range(1, count + 1)]
    if len(numbers) == 1:
        return numbers[0]
    return f"{', '.join(numbers[:-1])} ou {numbers[-1]}"


def facts_preserved(original: str, rewritten: str) -> bool:
    """Check that a rewrite kept every fact of the original.

    Facts are numbers, dates, times, quoted words and the clinic name,
    address and phone, each only when present in the original.
    """
    facts = _FACT_RE.findall(original)
    facts += [
        value
        for value in (settings.clinic_name, settings.clinic_address, settings.clinic_phone)
        if value and value in original
    ]
    return all(fact in rewritten for fact in facts)


class ResponseGenerator:
    """
    Template-based response generator with an optional LLM rewrite.

    Templates are used for every message; Claude only rephrases the final
    text when an API key is configured.
    """

    def __init__(
        self,
        claude_client: Optional[ClaudeClient] = None,
        humanize_enabled: Optional[bool] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """Initialize generator.

        Args:
            claude_client: Claude client (uses singleton if not provided)
            humanize_enabled: Enable the rewrite pass (defaults to whether an API key is set)
            timeout_seconds: Hard limit for the rewrite pass
        """
        self._claude_client = claude_client
        self._humanize_enabled = (
            settings.humanize_enabled if humanize_enabled is None else humanize_enabled
        )
        self._timeout = timeout_seconds or settings.humanize_timeout_seconds

    def _get_client(self) -> ClaudeClient:
        """Get Claude client."""
        if self._claude_client is None:
            self._claude_client = get_claude_client()
        return self._claude_client

    # === Text presentation ===

    async def humanize(self, text: str) -> str:
        """Optionally rephrase outgoing text.

        Never raises: on timeout, API failure, empty output or a rewrite
        that loses a fact, the original text is returned.

        Args:
            text: Template text

        Returns:
            Rewritten or original text
        """
        if not self._humanize_enabled or not text:
            return text

        try:
            client = self._get_client()
            rewritten = await asyncio.wait_for(
                client.rewrite(text, system_prompt=HUMANIZE_SYSTEM_PROMPT),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Humanize timed out after {self._timeout}s, using template")
            return text
        except (ClaudeClientError, ValueError) as e:
            logger.warning(f"Humanize failed, using template: {e}")
            return text

        rewritten = (rewritten or "").strip()
        if not rewritten:
            return text
        if not facts_preserved(text, rewritten):
            logger.warning("Humanize dropped facts from the message, using template")
            return text
        return rewritten

    # === Greeting ===

    def greeting(self) -> str:
        """Clinic greeting with address and phone."""
        lines = [
            f"Olá! Você está falando com o assistente da {settings.clinic_name}.",
            f"Endereço: {settings.clinic_address}",
        ]
        if settings.clinic_phone:
            lines.append(f"Telefone: {settings.clinic_phone}")
        return "\n".join(lines)

    def ask_continue(self) -> str:
        return "Posso ajudar a agendar uma consulta? (responda Sim ou Não)"

    def continue_declined(self) -> str:
        return 'Sem problemas! Se precisar, envie "menu" para recomeçar.'

    def continue_invalid(self) -> str:
        return "Não entendi. Responda com Sim ou Não, por favor."

    # === Intake ===

    def ask_name(self) -> str:
        return "Para começar, qual é o seu nome completo?"

    def name_invalid(self) -> str:
        return "Por favor, informe o seu nome."

    def ask_insurance(self) -> str:
        return "O atendimento será por convênio (plano de saúde) ou particular?"

    def insurance_invalid(self) -> str:
        return 'Por favor, responda "particular" ou "convênio".'

    def ask_plan_name(self) -> str:
        return "Qual o nome do seu plano de saúde?"

    def plan_name_invalid(self) -> str:
        return "Por favor, informe o nome do seu plano de saúde."

    def ask_reason(self, prefix: str = "") -> str:
        """Ask for the visit reason, with examples.

        Args:
            prefix: Acknowledgement placed before the question ("Certo!")
        """
        question = f"Qual o motivo da consulta? ({REASON_EXAMPLES})"
        return f"{prefix} {question}" if prefix else question

    def reason_invalid(self) -> str:
        return f"Por favor, me diga o motivo da consulta. ({REASON_EXAMPLES})"

    # === Slots ===

    def no_slots(self) -> str:
        return (
            "Não encontrei horários livres nos próximos dias. "
            'Pode me dizer um dia de preferência? (Ex.: "amanhã", "quarta", "20/10")'
        )

    def no_slots_on_date(self, day: date) -> str:
        return f"Não encontrei horários livres em {format_day(day)}. Pode sugerir outro dia?"

    def date_invalid(self) -> str:
        return (
            "Não entendi a data. Pode me dizer um dia? "
            '(Ex.: "amanhã", "próxima quarta", "20/10")'
        )

    def lead_time_notice(self) -> str:
        return (
            f"Para o seu convênio, o agendamento precisa ser feito com "
            f"{settings.lead_time_days} dias de antecedência."
        )

    def format_slots(self, slots: list[Slot], intro: Optional[str] = None) -> str:
        """Format offered slots as a numbered list.

        Args:
            slots: Slots in the order they are offered
            intro: Optional text placed before the list

        Returns:
            Formatted slot list
        """
        lines = []
        if intro:
            lines.append(intro)
        lines.append("Tenho estes horários:")
        for i, slot in enumerate(slots, 1):
            lines.append(f"{i}) {slot.label}")
        lines.append(f"Responda com {_choice_list(len(slots))} para escolher.")
        return "\n".join(lines)

    def selection_invalid(self, count: int) -> str:
        return f"Por favor, escolha {_choice_list(count)}, ou me diga outro dia de preferência."

    # === Confirmation ===

    def confirm_slot(self, slot: Slot) -> str:
        return f"Você confirma {slot.long_label}? (Sim/Não)"

    def confirm_invalid(self) -> str:
        return "Responda com Sim ou Não, por favor."

    def slot_declined(self) -> str:
        return self.ask_reason(prefix="Sem problemas.")

    def slot_taken(self) -> str:
        return (
            "Poxa, esse horário acabou de ser ocupado. Vamos tentar outro. "
            "Qual o motivo da consulta mesmo?"
        )

    def booking_confirmed(self, slot: Slot) -> str:
        """Booking confirmation with date, clinic name, address and phone."""
        lines = [
            f"Agendamento confirmado para {slot.long_label}.",
            settings.clinic_name,
            settings.clinic_address,
        ]
        if settings.clinic_phone:
            lines.append(f"Dúvidas: {settings.clinic_phone}")
        lines.append('Se precisar remarcar, responda "menu" para recomeçar.')
        return "\n".join(lines)

    def already_booked(self) -> str:
        return 'Você já tem um agendamento. Envie "menu" para iniciar um novo atendimento.'

    # === Control ===

    def restarted(self) -> str:
        return "Certo, vamos recomeçar. Envie qualquer mensagem para iniciar um novo atendimento."

    def error(self) -> str:
        return 'Tive um erro aqui do meu lado. Pode enviar "menu" para recomeçar?'


# Singleton
_generator: Optional[ResponseGenerator] = None


def get_response_generator() -> ResponseGenerator:
    """Get singleton ResponseGenerator."""
    global _generator
    if _generator is None:
        _generator = ResponseGenerator()
    return _generator

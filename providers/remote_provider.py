#!/usr/bin/env python3
"""
Remote analysis provider backed by the DeepSeek chat API.
Each call sends a Portuguese prompt and expects a single JSON object back.
"""

import logging
from typing import Any, Dict, List

from api.clients.deepseek_client import DeepSeekClient
from config_manager import AnalysisSettings
from models import Message, REMOTE, SUMMARY, LEAD_INFO, CONVERSATION_KPIS
from providers.base import AnalysisProvider, ProviderResponse, format_conversation

logger = logging.getLogger(__name__)

CONVERSATION_WINDOW = 150
KPI_WINDOW = 50
MESSAGE_MAX_CHARS = 800

SUMMARY_SYSTEM = ("Você é um assistente especializado em análise de conversas de atendimento. "
                  "Responda sempre em JSON válido, sem markdown.")
LEAD_SYSTEM = ("Você é um assistente especializado em análise de leads comerciais. "
               "Responda sempre em JSON válido, sem markdown.")
KPI_SYSTEM = ("Você é um assistente especializado em análise de conversas de atendimento. "
              "Seja ESPECÍFICO e extraia TODOS os detalhes mencionados. Responda sempre em JSON válido.")
MESSAGE_SYSTEM = "Você é um assistente de análise de mensagens. Responda sempre em JSON válido."

SUMMARY_PROMPT = """Você é um assistente especializado em análise de conversas comerciais. Analise a conversa abaixo e extraia TODOS os detalhes importantes.

INFORMAÇÕES DO CONTEXTO:
- Contato: {contact_name}
- Período: {period}
- Total de mensagens: {total}

CONVERSA:
{conversation}

INSTRUÇÕES:
1. Seja específico: mencione produtos, valores, prazos e condições de pagamento exatamente como foram ditos
2. Não seja vago: diga qual foi o interesse do cliente, não apenas que houve interesse
3. Mensagens de áudio aparecem transcritas; "[Áudio sem transcrição]" indica um áudio ainda não transcrito

Responda APENAS no formato JSON abaixo:
{{
  "summary": "Resumo detalhado com valores, produtos e condições mencionados",
  "sentiment": "positive|neutral|negative",
  "sentimentReason": "Explicação do sentimento",
  "intent": "Intenção específica",
  "intentConfidence": 0.85,
  "highlights": ["Detalhe 1", "Detalhe 2"],
  "conclusion": "Status atual e próximos passos esperados",
  "urgencyLevel": "low|medium|high|critical",
  "suggestedActions": ["Ação específica"]
}}"""

LEAD_PROMPT = """Você é um assistente de análise de leads comerciais. Analise a conversa abaixo e extraia todas as informações relevantes do cliente.

CONTATO: {contact_name}
TOTAL DE MENSAGENS: {total}

CONVERSA:
{conversation}

Responda APENAS em formato JSON:
{{
  "products": ["produto específico"],
  "values": ["R$ 3.500"],
  "totalValue": 3500.00,
  "interestLevel": "baixo|médio|alto|muito_alto",
  "urgencyLevel": "baixa|média|alta|crítica",
  "stage": "contato_inicial|pesquisando|negociando|pronto_comprar|fechado|perdido",
  "mainNeed": "Necessidade principal",
  "budget": "Orçamento mencionado ou 'não mencionado'",
  "deadline": "Prazo mencionado ou 'não mencionado'",
  "objections": ["objeção"],
  "isDecisionMaker": true,
  "checkingCompetitors": false,
  "nextSteps": ["passo"],
  "notes": "Observações adicionais",
  "sentiment": "positivo|neutro|negativo",
  "conversionProbability": 0.75
}}"""

KPI_PROMPT = """Você é um especialista em análise de conversas comerciais. Analise esta conversa e extraia os detalhes importantes.

CONVERSA ({total} mensagens):
{conversation}

CATEGORIAS VÁLIDAS: consulta_preco, negociacao, venda_fechada, suporte, reclamacao, orcamento, agendamento, pos_venda

Responda APENAS em JSON:
{{
  "sentiment": "positive|neutral|negative",
  "sentimentScore": 0.85,
  "category": "consulta_preco",
  "categoryConfidence": 0.95,
  "intent": "comprar|reclamar|perguntar|cancelar|negociar",
  "intentConfidence": 0.9,
  "urgency": 0.6,
  "urgencyLevel": "low|medium|high|critical",
  "hasNegotiation": true,
  "extractedValues": [3000, 5000],
  "extractedProducts": ["Produto"],
  "extractedConditions": ["Garantia de 3 meses"],
  "summary": "Resumo específico"
}}"""

MESSAGE_PROMPT = """Analise esta mensagem de atendimento ao cliente:

"{content}"

Determine sentimento (com score 0-1), categoria (vendas, suporte, reclamacao, duvida, negociacao),
urgência de 0 a 10 e intenção principal (comprar, reclamar, perguntar, cancelar, negociar).

Responda APENAS em JSON:
{{
  "sentiment": "positive",
  "sentimentScore": 0.85,
  "category": "vendas",
  "categoryScore": 0.9,
  "urgency": 3,
  "urgencyLevel": "low",
  "intent": "comprar",
  "intentScore": 0.8
}}"""


class RemoteProvider(AnalysisProvider):
    """DeepSeek-backed provider"""

    name = REMOTE

    def __init__(self, client: DeepSeekClient, settings: AnalysisSettings = AnalysisSettings()):
        self.client = client
        self.settings = settings

    @staticmethod
    def _period(context: Dict[str, Any]) -> str:
        start, end = context.get("period_start"), context.get("period_end")
        if start and end:
            return f"{start:%d/%m/%Y %H:%M} a {end:%d/%m/%Y %H:%M}"
        return "Não especificado"

    async def summarize(self, messages: List[Message], context: Dict[str, Any]) -> ProviderResponse:
        prompt = SUMMARY_PROMPT.format(
            contact_name=context.get("contact_name") or "Cliente",
            period=self._period(context),
            total=len(messages),
            conversation=format_conversation(messages, CONVERSATION_WINDOW, MESSAGE_MAX_CHARS),
        )
        data = await self.client.complete_json(SUMMARY_SYSTEM, prompt, timeout=self.settings.summary_timeout)
        return ProviderResponse(self.name, SUMMARY, data)

    async def extract_lead_info(self, messages: List[Message], context: Dict[str, Any]) -> ProviderResponse:
        prompt = LEAD_PROMPT.format(
            contact_name=context.get("contact_name") or "Cliente",
            total=len(messages),
            conversation=format_conversation(messages, CONVERSATION_WINDOW, MESSAGE_MAX_CHARS, with_time=False),
        )
        data = await self.client.complete_json(LEAD_SYSTEM, prompt, timeout=self.settings.lead_timeout)
        return ProviderResponse(self.name, LEAD_INFO, data)

    async def analyze_for_kpis(self, messages: List[Message]) -> ProviderResponse:
        prompt = KPI_PROMPT.format(
            total=len(messages),
            conversation=format_conversation(messages, KPI_WINDOW, MESSAGE_MAX_CHARS),
        )
        data = await self.client.complete_json(KPI_SYSTEM, prompt, timeout=self.settings.kpi_timeout, max_tokens=1000)
        return ProviderResponse(self.name, CONVERSATION_KPIS, data)

    async def analyze_message(self, text: str) -> ProviderResponse:
        prompt = MESSAGE_PROMPT.format(content=text[:500])
        data = await self.client.complete_json(MESSAGE_SYSTEM, prompt, timeout=self.settings.message_timeout,
                                               max_tokens=300, temperature=0.2)
        return ProviderResponse(self.name, "message", data)

    async def ping(self) -> bool:
        return await self.client.ping(timeout=self.settings.ping_timeout)

    async def close(self) -> None:
        await self.client.close()

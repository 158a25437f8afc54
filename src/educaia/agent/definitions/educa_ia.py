"""
EducaIA, the default assistant of SmartGesTI Ensino.

Holds the base instructions, the tool list and helpers for adapting the
prompt to the caller and the response mode.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..domain.entities import ResponseMode, UserContext
from .factory import AgentConfig

EDUCA_IA_NAME = "educa-ia"

EDUCA_IA_TOOLS = [
    "retrieveKnowledge",
    "queryDatabase",
    "navigateToPage",
    "getUserData",
    "listAgents",
    "getAgentDetails",
]

# Stop after 15 tool rounds
EDUCA_IA_MAX_TOOL_ROUNDS = 15

EDUCA_IA_INSTRUCTIONS = """Você é o EducaIA, assistente virtual inteligente do SmartGesTI Ensino.

## PERSONALIDADE
- Amigável, didático e paciente
- Chame o usuário pelo nome quando disponível
- Explique conceitos de forma clara e acessível
- Seja proativo em sugerir ajuda adicional
- Use linguagem simples, evite jargões técnicos desnecessários
- Seja empático e entenda o contexto educacional

## REGRAS ABSOLUTAS
- **NUNCA** invente informações - se não souber, diga claramente
- **SEMPRE** use as tools para buscar dados quando não tiver certeza
- **SEMPRE** confirme operações sensíveis antes de executar
- Se não encontrar a informação nas tools, admita que não sabe
- Para operações de banco de dados, **SEMPRE** peça aprovação do usuário

## COMO USAR AS TOOLS

### retrieveKnowledge (RAG)
Use para buscar na base de conhecimento:
- Informações sobre funcionalidades do sistema
- Documentação de APIs e integrações
- Guias de uso de páginas e recursos
- Configurações e boas práticas

### queryDatabase (requer aprovação)
Use para consultar dados específicos:
- Estatísticas (quantidade de usuários, escolas)
- Dados específicos de configuração
- Informações de registros do sistema
⚠️ SEMPRE peça aprovação antes de executar queries

### navigateToPage
Use para sugerir páginas do sistema:
- Quando o usuário pergunta "onde encontro..."
- Para direcionar a funcionalidades específicas
- Para mostrar caminhos no menu

### getUserData
Use para obter dados do próprio usuário:
- Preferências salvas
- Dados do perfil
- Dados da escola vinculada

### listAgents / getAgentDetails
Use para apresentar os agentes de IA disponíveis na escola e explicar como cada um ajuda.

## REGRA DE NAVEGAÇÃO (CRÍTICO - SIGA SEMPRE)
- **SEMPRE** que for mencionar QUALQUER funcionalidade acessível do sistema, você DEVE usar a tool `navigateToPage` ANTES de responder
- A tool gera botões de navegação clicáveis automaticamente - NÃO escreva rotas no texto
- **NUNCA** escreva rotas técnicas como "/escola/:slug/...", "rota: /...", ou qualquer URL/path
- Apenas mencione o caminho do menu de forma amigável: "EducaIA > Ver Agentes"

## ESTRATÉGIA DE RESPOSTA
- O modo de resposta (Rápido ou Detalhado) é definido pelo usuário na interface
- NÃO sugira "ativar modo detalhado" - você não pode alterar configurações
- NÃO diga "quer que eu ative?" ou "posso abrir a página" - você não pode executar ações na interface
- Seja versátil: responda sobre QUALQUER funcionalidade do sistema (acadêmico, financeiro, administrativo, RH, IA, etc.)

## O QUE VOCÊ NÃO PODE FAZER
- NÃO pode ativar/desativar modos ou configurações
- NÃO pode navegar para páginas ou abrir links (apenas sugerir com a tool navigateToPage)
- NÃO pode executar ações no sistema além de consultar dados
- NÃO prometa fazer coisas que não pode - seja honesto sobre suas limitações

## FORMATO DAS RESPOSTAS
- Use markdown para formatação (listas, negrito, código)
- Para passos, use listas numeradas
- Para dicas, use blocos de destaque
- Mencione funcionalidades pelo nome amigável: "Ver Agentes", "Criar Agente IA"
- **PROIBIDO**: Escrever rotas, paths, URLs ou qualquer texto técnico como "/escola/:slug/..."
- Os botões de navegação são gerados automaticamente pela tool - confie nela"""

ROLE_LABELS = {
    "admin": "Administrador",
    "teacher": "Professor",
    "student": "Aluno",
    "coordinator": "Coordenador",
    "secretary": "Secretário",
}

MODE_SECTIONS = {
    ResponseMode.FAST: (
        "## MODO ATUAL: RÁPIDO ⚡\n"
        "Você está no modo RÁPIDO. Seja conciso e direto. Use no máximo 3 resultados "
        "do RAG. NÃO sugira mudar para modo detalhado."
    ),
    ResponseMode.DETAILED: (
        "## MODO ATUAL: DETALHADO 📚\n"
        "Você está no modo DETALHADO. Forneça explicações completas com exemplos e "
        "contexto. Use até 6+ resultados do RAG. Você JÁ está no modo mais completo."
    ),
}

COMPLEX_INDICATORS = (
    "como funciona",
    "explique detalhadamente",
    "passo a passo",
    "todos os",
    "complete",
    "arquitetura",
    "diferença entre",
    "diferenca entre",
    "compare",
    "liste todos",
    "descreva",
    "explique",
    "por que",
    "qual a diferença",
    "tutorial",
    "guia",
)


def detect_complexity(question: str) -> str:
    """Classify a question as "simple" or "complex" by keyword."""
    lowered = question.lower()
    if any(indicator in lowered for indicator in COMPLEX_INDICATORS):
        return "complex"
    return "simple"


def should_suggest_detailed_mode(question: str, mode: ResponseMode) -> bool:
    """True when a fast-mode question looks like it needs the detailed mode."""
    return mode == ResponseMode.FAST and detect_complexity(question) == "complex"


def user_context_section(context: UserContext) -> Optional[str]:
    """The "current user" prompt section, or None when nothing is known."""
    lines = []
    if context.user_name:
        lines.append(f"👤 Usuário: {context.user_name}")
    if context.user_role:
        lines.append(f"🎭 Papel: {ROLE_LABELS.get(context.user_role, context.user_role)}")
    if context.school_name:
        lines.append(f"🏫 Escola: {context.school_name}")
    elif context.school_id:
        lines.append(f"🏫 Escola ID: {context.school_id}")

    if not lines:
        return None
    return "## CONTEXTO DO USUÁRIO ATUAL\n" + "\n".join(lines)


def mode_section(mode: ResponseMode) -> str:
    return MODE_SECTIONS[mode]


def educa_ia_config(
    tools: Optional[Iterable[str]] = None,
    model: Optional[str] = None,
    provider: Optional[str] = None,
) -> AgentConfig:
    """Configuration of the EducaIA agent.

    Args:
        tools: Tool names to bind (defaults to the full EducaIA tool set)
        model: Model override
        provider: Provider override
    """
    return AgentConfig(
        name=EDUCA_IA_NAME,
        instructions=EDUCA_IA_INSTRUCTIONS,
        tools=list(EDUCA_IA_TOOLS if tools is None else tools),
        model=model,
        provider=provider,
        category="assistente",
        tags=["rag", "suporte", "navegacao"],
        description="Assistente virtual do SmartGesTI Ensino",
        max_tool_rounds=EDUCA_IA_MAX_TOOL_ROUNDS,
    )

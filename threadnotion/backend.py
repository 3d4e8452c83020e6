# threadnotion/backend.py

import json
import logging
from datetime import datetime, timezone

from langchain_core.messages import HumanMessage, SystemMessage
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from threadnotion.base_utils import BaseUtils
from threadnotion.db_helpers import (
    HISTORY_MAX_TOKENS,
    LLM_MODEL,
    LLM_TIMEOUT,
    PROJECT_ID,
    REGION,
    create_session_factory,
    get_db_engine,
)
from threadnotion.entities import Base, Conversation, Evaluation, Message, Persona, Product, Script
from threadnotion.llm_client import ChatLlmClient, to_chat_messages
from threadnotion.llm_schemas import InvalidLlmOutputError, format_script_to_string, normalize_evaluation
from threadnotion.prompts import (
    ASSISTANT_SYSTEM_PROMPT,
    FEEDBACK_RUBRIC,
    JUDGE_SYSTEM_PROMPT,
    JUDGE_USER_PROMPT,
    PRODUCT_CONTEXT_PROMPT,
    ROLEPLAY_SYSTEM_PROMPT,
    SCRIPT_PROMPT,
    SCRIPT_SYSTEM_PROMPT,
    TEST_LLM_PROMPT,
)

logger = logging.getLogger("threadnotion")

CHAT_MODES = ("roleplay", "assistant")
DEFAULT_TONE = "neutral"


class NotFoundError(Exception):
    pass


class BadRequestError(Exception):
    pass


class ConflictError(Exception):
    pass


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def script_cache_key(product_id: str, persona_id: str | None, tone: str | None) -> str:
    return f"{product_id}:{persona_id or 'none'}:{tone if tone is not None else DEFAULT_TONE}"


class Backend(BaseUtils):
    def __init__(self, engine=None, chat_llm=None, history_max_tokens: int = HISTORY_MAX_TOKENS):
        self.engine = engine if engine is not None else get_db_engine()
        Base.metadata.create_all(self.engine)
        self.Session = create_session_factory(self.engine)
        self.history_max_tokens = history_max_tokens
        self.chat_llm = chat_llm if chat_llm is not None else self._build_chat_llm(LLM_MODEL)

    # -----------------------
    # LLM plumbing
    # -----------------------

    def _build_chat_llm(self, model_name: str, timeout: float | None = None) -> ChatLlmClient:
        logger.info(f"[LLM] Using model {model_name}")
        return ChatLlmClient(
            model_name=model_name,
            vertex_project=PROJECT_ID,
            vertex_region=REGION,
            timeout=timeout or LLM_TIMEOUT,
        )

    # -----------------------
    # Serialization
    # -----------------------

    def _persona_to_dict(self, persona: Persona) -> dict:
        return {
            "id": persona.id,
            "name": persona.name,
            "tone": persona.tone,
            "values": list(persona.traits or []),
            "instructions": persona.instructions,
            "createdAt": _iso(persona.created_at),
        }

    def _product_to_dict(self, product: Product) -> dict:
        return {
            "id": product.id,
            "name": product.title,
            "title": product.title,
            "description": product.description,
            "brand": product.brand,
            "price": float(product.price) if product.price is not None else None,
            "currency": product.currency,
            "sku": product.sku,
            "attributes": product.attributes,
            "createdAt": _iso(product.created_at),
            "updatedAt": _iso(product.updated_at),
        }

    def _evaluation_to_dict(self, evaluation: Evaluation) -> dict:
        return {
            "id": evaluation.id,
            "conversationId": evaluation.conversation_id,
            "storytelling": evaluation.storytelling,
            "emotional": evaluation.emotional,
            "persuasion": evaluation.persuasion,
            "productKnow": evaluation.product_know,
            "total": evaluation.total,
            "strengths": evaluation.strengths,
            "tips": evaluation.tips,
            "createdAt": _iso(evaluation.created_at),
        }

    def _conversation_to_dict(self, conv: Conversation) -> dict:
        return {
            "id": conv.id,
            "personaId": conv.persona_id,
            "productId": conv.product_id,
            "createdAt": _iso(conv.created_at),
            "persona": (
                {"id": conv.persona.id, "name": conv.persona.name, "tone": conv.persona.tone}
                if conv.persona else None
            ),
            "messages": [
                {
                    "id": m.id,
                    "role": m.role,
                    "content": m.content,
                    "createdAt": _iso(m.created_at),
                }
                for m in conv.messages
            ],
            "evaluation": self._evaluation_to_dict(conv.evaluation) if conv.evaluation else None,
        }

    # -----------------------
    # Reads
    # -----------------------

    def check_database(self) -> bool:
        session = self.Session()
        try:
            session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            self.color_print(f"check_database(): DB error -> {e}", color="red")
            return False
        finally:
            session.close()

    def list_personas(self) -> list[dict]:
        session = self.Session()
        try:
            personas = session.scalars(
                select(Persona).order_by(Persona.created_at.desc())
            ).all()
            return [self._persona_to_dict(p) for p in personas]
        finally:
            session.close()

    def list_products(self) -> list[dict]:
        session = self.Session()
        try:
            products = session.scalars(
                select(Product).order_by(Product.created_at.desc())
            ).all()
            return [self._product_to_dict(p) for p in products]
        finally:
            session.close()

    def _conversation_query(self):
        return select(Conversation).options(
            selectinload(Conversation.messages),
            selectinload(Conversation.persona),
            selectinload(Conversation.evaluation),
        )

    def list_conversations(self) -> list[dict]:
        session = self.Session()
        try:
            conversations = session.scalars(
                self._conversation_query().order_by(Conversation.created_at.desc())
            ).all()
            return [self._conversation_to_dict(c) for c in conversations]
        finally:
            session.close()

    def get_conversation(self, conversation_id: str) -> dict:
        session = self.Session()
        try:
            conv = session.scalars(
                self._conversation_query().where(Conversation.id == conversation_id)
            ).first()
            if conv is None:
                raise NotFoundError("conversation not found")
            return self._conversation_to_dict(conv)
        finally:
            session.close()

    # -----------------------
    # Prompt assembly
    # -----------------------

    def _product_prompt_kwargs(self, product: Product, price_fallback: str, description_fallback: str) -> dict:
        return {
            "title": product.title,
            "brand": product.brand or "Store brand",
            "price": f"${product.price}" if product.price is not None else price_fallback,
            "description": product.description or description_fallback,
            "details": f"- Details: {json.dumps(product.attributes)}" if product.attributes else "",
        }

    def build_system_prompt(self, persona: Persona, product: Product | None, mode: str) -> str:
        if mode == "assistant":
            return ASSISTANT_SYSTEM_PROMPT

        product_context = ""
        if product is not None:
            product_context = self.unsafe_string_format(
                PRODUCT_CONTEXT_PROMPT,
                **self._product_prompt_kwargs(product, "Ask associate", "Fashion apparel item"),
            )
        return self.unsafe_string_format(
            ROLEPLAY_SYSTEM_PROMPT,
            persona_name=persona.name,
            persona_instructions=persona.instructions,
            product_context=product_context,
        )

    def build_transcript(self, messages) -> str:
        return "\n".join(f"{m.role.upper()}: {m.content}" for m in messages)

    def build_script_prompt(self, product: Product, persona: Persona | None, tone: str | None) -> str:
        if persona is not None:
            customer = f"CUSTOMER TYPE: {persona.name}\n{persona.instructions}"
        else:
            customer = "CUSTOMER: General fashion shopper"
        return self.unsafe_string_format(
            SCRIPT_PROMPT,
            customer=customer,
            tone=tone or DEFAULT_TONE,
            **self._product_prompt_kwargs(product, "TBD", "Fashion item"),
        )

    # -----------------------
    # Chat
    # -----------------------

    def chat(
        self,
        persona_id: str,
        message: str,
        conversation_id: str | None = None,
        product_id: str | None = None,
        mode: str | None = None,
    ) -> dict:
        chat_mode = mode or "roleplay"
        if chat_mode not in CHAT_MODES:
            raise BadRequestError(f"unknown chat mode: {chat_mode}")

        session = self.Session()
        try:
            persona = session.get(Persona, persona_id)
            if persona is None:
                raise NotFoundError("persona not found")

            product = session.get(Product, product_id) if product_id else None

            convo = None
            if conversation_id:
                convo = session.scalars(
                    select(Conversation)
                    .options(selectinload(Conversation.messages))
                    .where(Conversation.id == conversation_id)
                ).first()
                if convo is None:
                    logger.info(f"chat(): conversation {conversation_id} not found, starting a new one")
            if convo is None:
                convo = Conversation(persona_id=persona.id, product_id=product.id if product else None)
                session.add(convo)
                session.flush()

            history_rows = self._prune_to_token_cap(list(convo.messages), self.history_max_tokens)
            # the model must see a user turn first
            while history_rows and history_rows[0].role == "assistant":
                history_rows.pop(0)
            history = [
                SystemMessage(content=self.build_system_prompt(persona, product, chat_mode)),
                *to_chat_messages(history_rows),
                HumanMessage(content=message),
            ]

            reply = self.chat_llm.invoke(history)

            next_position = len(convo.messages)
            session.add_all([
                Message(conversation_id=convo.id, position=next_position, role="user", content=message),
                Message(conversation_id=convo.id, position=next_position + 1, role="assistant", content=reply),
            ])
            try:
                session.commit()
            except IntegrityError as e:
                # another reply was stored at the same positions first
                raise ConflictError("conversation was updated concurrently, resend the message") from e
            return {"conversationId": convo.id, "reply": reply}
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -----------------------
    # Feedback
    # -----------------------

    def feedback(self, conversation_id: str) -> dict:
        session = self.Session()
        try:
            convo = session.scalars(
                self._conversation_query().where(Conversation.id == conversation_id)
            ).first()
            if convo is None:
                raise NotFoundError("conversation not found")
            if not convo.messages:
                raise BadRequestError("conversation has no messages to evaluate")

            user_prompt = self.unsafe_string_format(
                JUDGE_USER_PROMPT,
                rubric=FEEDBACK_RUBRIC,
                persona=convo.persona.name if convo.persona else "",
                transcript=self.build_transcript(convo.messages),
            )
            raw = self.chat_llm.invoke(
                [SystemMessage(content=JUDGE_SYSTEM_PROMPT), HumanMessage(content=user_prompt)],
                json_mode=True,
            )
            try:
                raw_json = self.load_fault_tolerant_json(raw, llm=self.chat_llm)
            except ValueError as e:
                raise InvalidLlmOutputError("Evaluation is not valid JSON", details=str(e)) from e
            parsed = normalize_evaluation(raw_json)

            evaluation = convo.evaluation
            if evaluation is None:
                evaluation = Evaluation(conversation_id=convo.id)
                session.add(evaluation)
            evaluation.storytelling = parsed.storytelling
            evaluation.emotional = parsed.emotional
            evaluation.persuasion = parsed.persuasion
            evaluation.product_know = parsed.productKnow
            evaluation.total = parsed.total
            evaluation.strengths = parsed.strengths
            evaluation.tips = parsed.tips
            session.commit()

            logger.info(f"feedback(): conversation {convo.id} scored {parsed.total}/40")
            return self._evaluation_to_dict(evaluation)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -----------------------
    # Script generation
    # -----------------------

    def _script_response(self, script: Script, cached: bool) -> dict:
        return {
            "id": script.id,
            "steps": format_script_to_string(script.content),
            "personaId": script.persona_id,
            "productId": script.product_id,
            "tone": script.tone,
            "cached": cached,
        }

    def generate_script(self, product_id: str, persona_id: str | None = None, tone: str | None = None) -> dict:
        session = self.Session()
        try:
            product = session.get(Product, product_id)
            if product is None:
                raise NotFoundError("product not found")
            persona = session.get(Persona, persona_id) if persona_id else None

            cache_key = script_cache_key(product.id, persona.id if persona else None, tone)
            existing = session.scalars(select(Script).where(Script.cache_key == cache_key)).first()
            if existing is not None:
                logger.info(f"generate_script(): cache hit {cache_key}")
                return self._script_response(existing, cached=True)

            script_text = self.chat_llm.invoke([
                SystemMessage(content=SCRIPT_SYSTEM_PROMPT),
                HumanMessage(content=self.build_script_prompt(product, persona, tone)),
            ])

            saved = Script(
                product_id=product.id,
                persona_id=persona.id if persona else None,
                tone=tone,
                cache_key=cache_key,
                content={
                    "persona": persona.name if persona else "General",
                    "script": script_text,
                    "tone": tone if tone is not None else DEFAULT_TONE,
                    "productId": product.id,
                    "generatedAt": datetime.now(timezone.utc).isoformat(),
                },
            )
            session.add(saved)
            try:
                session.commit()
            except IntegrityError:
                # another request stored the same key first
                session.rollback()
                winner = session.scalars(select(Script).where(Script.cache_key == cache_key)).first()
                if winner is None:
                    raise
                return self._script_response(winner, cached=True)

            return self._script_response(saved, cached=False)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -----------------------
    # Diagnostics
    # -----------------------

    def test_llm(self) -> str:
        return self.chat_llm.invoke([HumanMessage(content=TEST_LLM_PROMPT)])

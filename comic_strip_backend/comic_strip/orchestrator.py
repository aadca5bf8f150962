"""
Pipeline orchestrator.

Runs character synthesis, storyboard planning, panel illustration, narration
and layout composition as a langgraph StateGraph. The orchestrator is the only
writer of PipelineState: every node commits its changes through `_advance`,
which swaps in a new snapshot and notifies subscribers, so a presentation
layer can render progress after each step (and after each illustrated panel).

Starting a new comic replaces the state. A run whose state has been replaced
notices on its next commit and stops; its late results are dropped.
"""
import asyncio, logging, uuid
from typing import Callable, List, Optional, Union

from langgraph.graph import StateGraph, END

from .errors import DeviceError, GenerationError, LayoutError, PipelineBusyError, Stage
from .gemini_client import GeminiClient
from .layout_client import LayoutClient, grid_columns
from .models import ComicRequest, LayoutPanel, Notice, Phase, PipelineState
from .narration_client import NarrationClient
from .settings import NOTICE_TTL_S

logger = logging.getLogger(__name__)

Observer = Callable[[PipelineState], None]

# Stages whose failure passes through Phase.FAILED before returning to input.
FAILED_STAGES = (Stage.PLANNING, Stage.ILLUSTRATION)


class RunAbandoned(Exception):
    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"run {run_id} was replaced")


class Orchestrator:
    def __init__(self, generation: GeminiClient, narration: NarrationClient, layout: LayoutClient,
                 notice_ttl: float = NOTICE_TTL_S):
        self.generation = generation
        self.narration = narration
        self.layout = layout
        self.notice_ttl = notice_ttl
        self._state = PipelineState()
        self._observers: List[Observer] = []
        self._graph = self._build_graph()

    @property
    def state(self) -> PipelineState:
        return self._state

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe():
            if observer in self._observers:
                self._observers.remove(observer)
        return unsubscribe

    def _notify(self):
        snapshot = self._state
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                logger.exception("Pipeline observer failed")

    def _advance(self, run_id: str, **changes) -> dict:
        if run_id != self._state.run_id:
            raise RunAbandoned(run_id)
        self._state = self._state.model_copy(update=changes)
        self._notify()
        return changes

    # --- notices ---

    def _post_notice(self, message: str, stage: Optional[Stage] = None) -> Notice:
        notice = Notice(id=uuid.uuid4().hex, message=message, stage=stage)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop; notice {notice.id} stays until replaced")
        else:
            loop.call_later(self.notice_ttl, self._dismiss, notice.id)
        return notice

    def _dismiss(self, notice_id: str):
        if self._state.error is not None and self._state.error.id == notice_id:
            self._state = self._state.model_copy(update={"error": None})
            self._notify()

    def report_device_error(self, error: Union[DeviceError, str]):
        notice = self._post_notice(str(error), Stage.DEVICE)
        logger.warning(f"Device error: {notice.message}")
        self._state = self._state.model_copy(update={"error": notice})
        self._notify()

    # --- graph nodes ---

    async def _character_card(self, state: PipelineState) -> dict:
        req = state.request
        refs = await self.generation.synthesize_character(req.drawing, req.style_description)
        return self._advance(state.run_id, character_references=refs, phase=Phase.PLANNING_STORY,
                             status_message="Planning your epic story...")

    async def _plan_storyboard(self, state: PipelineState) -> dict:
        req = state.request
        storyboard = await self.generation.plan_storyboard(req.story, req.panel_count)
        n = len(storyboard.panels)
        return self._advance(state.run_id, storyboard=storyboard, panel_images=[None] * n,
                             panel_audio=[None] * n, phase=Phase.ILLUSTRATING_PANELS,
                             status_message="Illustrating your comic...")

    async def _illustrate_panels(self, state: PipelineState) -> dict:
        style = state.request.style_description
        panels = state.storyboard.panels
        images = list(state.panel_images)
        for i, panel in enumerate(panels):
            logger.info(f"Illustrating panel {i + 1}/{len(panels)} of run {state.run_id}")
            images[i] = await self.generation.illustrate_panel(panel.prompt, state.character_references, style, panel_index=i)
            self._advance(state.run_id, panel_images=list(images),
                          status_message=f"Illustrating your comic... ({i + 1}/{len(panels)})")
        return self._advance(state.run_id, panel_images=images, phase=Phase.GENERATING_NARRATION,
                             status_message="Generating audio narration...")

    async def _narrate_panels(self, state: PipelineState) -> dict:
        texts = [panel.narration_text() for panel in state.storyboard.panels]
        audio = await asyncio.gather(*(self.narration.synthesize(text) for text in texts))
        missing = sum(1 for a in audio if a is None)
        if missing:
            logger.warning(f"{missing}/{len(audio)} panels have no narration")
        return self._advance(state.run_id, panel_audio=list(audio), phase=Phase.COMPOSING_LAYOUT,
                             status_message="Creating your comic layout...")

    async def _compose_layout(self, state: PipelineState) -> dict:
        panels = [LayoutPanel(image=image, caption=panel.caption())
                  for image, panel in zip(state.panel_images, state.storyboard.panels)]
        try:
            final_layout = await self.layout.compose_layout(panels, grid_columns(len(panels)))
        except LayoutError as e:
            logger.warning(f"Layout composition failed, presenting raw panels instead: {e}")
            final_layout = None
        return self._advance(state.run_id, final_layout=final_layout, phase=Phase.READY,
                             busy=False, status_message="")

    def _build_graph(self):
        g = StateGraph(PipelineState)
        g.add_node("character_card", self._character_card)
        g.add_node("plan_storyboard", self._plan_storyboard)
        g.add_node("illustrate_panels", self._illustrate_panels)
        g.add_node("narrate_panels", self._narrate_panels)
        g.add_node("compose_layout", self._compose_layout)
        g.set_entry_point("character_card")
        g.add_edge("character_card", "plan_storyboard")
        g.add_edge("plan_storyboard", "illustrate_panels")
        g.add_edge("illustrate_panels", "narrate_panels")
        g.add_edge("narrate_panels", "compose_layout")
        g.add_edge("compose_layout", END)
        return g.compile()

    # --- transitions driven by the presentation layer ---

    def _fail(self, error: GenerationError):
        notice = self._post_notice(error.user_message, error.stage)
        logger.error(f"Run {self._state.run_id} failed at {error.stage.value}: {error}")
        if error.stage in FAILED_STAGES:
            self._state = self._state.model_copy(update={"phase": Phase.FAILED, "busy": False,
                                                         "status_message": "", "error": notice})
            self._notify()
        self._state = PipelineState(request=self._state.request, error=notice)
        self._notify()

    async def start(self, request: ComicRequest) -> PipelineState:
        if self._state.busy:
            raise PipelineBusyError("a comic is already being generated")
        run_id = uuid.uuid4().hex
        self._state = PipelineState(run_id=run_id, request=request, busy=True,
                                    status_message="Creating your hero...")
        self._notify()
        logger.info(f"Starting run {run_id}: {request.panel_count} panels, style={request.art_style or 'custom'}")
        try:
            await self._graph.ainvoke(self._state)
            logger.info(f"Run {run_id} ready (layout={'yes' if self._state.final_layout else 'fallback'})")
        except RunAbandoned:
            logger.warning(f"Run {run_id} was abandoned; discarding its late results")
        except GenerationError as e:
            if run_id != self._state.run_id:
                logger.warning(f"Ignoring failure of abandoned run {run_id}: {e}")
            else:
                self._fail(e)
        except Exception as e:
            logger.error(f"Run {run_id} crashed: {e}")
            if run_id == self._state.run_id:
                notice = self._post_notice(f"Comic Generation Error: {e}")
                self._state = PipelineState(request=self._state.request, error=notice)
                self._notify()
            raise
        return self._state

    def reset(self):
        """Start a new comic: drop everything, including any run still in flight."""
        if self._state.busy:
            logger.info(f"Abandoning run {self._state.run_id}")
        self._state = PipelineState()
        self._notify()

from langgraph.graph import END, StateGraph

from plantswap.workflow.nodes import adjustment, generation, selection, verification
from plantswap.workflow.state import StepState


def build_step_workflow(cfg, generator, verifier):
    """
    Wires the per-step attempt loop: generate -> verify -> (accept | adjust and retry | await manual pick).
    """
    graph = StateGraph(StepState)

    graph.add_node(
        "generator",
        lambda state: generation.generate_candidates_node(
            state=state,
            generator=generator,
            prompt_template=cfg.prompts.edit_prompt,
            num_candidates=cfg.generation.num_candidates,
            max_retries=cfg.retry.max_retries,
            resolution=cfg.generation.resolution,
        ),
    )
    graph.add_node(
        "verifier",
        lambda state: verification.verify_candidates_node(state=state, verifier=verifier),
    )
    graph.add_node(
        "adjuster",
        lambda state: adjustment.adjust_region_node(
            state=state,
            ry_shrink=cfg.retry.ry_shrink,
            cy_shift=cfg.retry.cy_shift,
            retry_delay=cfg.retry.retry_delay,
        ),
    )
    graph.add_node(
        "selector",
        lambda state: selection.await_selection_node(state=state, timeout=cfg.retry.selection_timeout),
    )

    graph.set_entry_point("generator")

    def generator_router(state: StepState):
        if state.get("cancelled"):
            return END
        return "verifier"

    def verifier_router(state: StepState):
        if state.get("accepted") is not None:
            return END
        if state.get("attempt", 0) >= cfg.retry.max_retries:
            return "selector"
        return "adjuster"

    graph.add_conditional_edges("generator", generator_router)
    graph.add_conditional_edges("verifier", verifier_router)
    graph.add_edge("adjuster", "generator")
    graph.add_edge("selector", END)

    return graph.compile()


def recursion_limit(max_retries: int) -> int:
    # generator + verifier + adjuster per attempt, plus the selector
    return max_retries * 3 + 5

import logging
import gradio as gr
from typing import Any, List, Optional, Tuple

from config import get_settings
from course_generator import OllamaCourseServices
from errors import CourseError
from models import Language, StageContent, StagePhase, StructuredContent
from progress_tracker import CourseSnapshot, ProgressTracker
from progression import ProgressionController

settings = get_settings()

# Configure logging
logging.basicConfig(level=settings.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

LANGUAGE_CHOICES = [("English", Language.EN.value), ("中文", Language.ZH.value)]

TRANSLATIONS = {
    "course_outline": {"en": "Course Outline", "zh": "课程大纲"},
    "theory": {"en": "Theory", "zh": "理论"},
    "case_study": {"en": "Case Study", "zh": "案例研究"},
    "practical_exercise": {"en": "Practical Exercise", "zh": "实践练习"},
    "assignment": {"en": "Assignment", "zh": "课堂作业"},
    "your_submission": {"en": "Your Submission", "zh": "您提交的内容"},
    "ai_feedback": {"en": "AI Feedback", "zh": "AI 反馈"},
    "score": {"en": "Score", "zh": "分数"},
    "loading_content": {"en": "Generating stage content with AI...", "zh": "正在用 AI 生成阶段内容..."},
    "congrats": {
        "en": "Congratulations! You've completed the curriculum. Generate your business plan as a final step.",
        "zh": "恭喜！您已完成全部课程。最后一步，生成您的商业计划书。",
    },
    "no_course": {"en": "Enter your startup idea to begin.", "zh": "请输入您的创业想法开始学习。"},
}

def t(key: str, language: str) -> str:
    return TRANSLATIONS.get(key, {}).get(language, key)

class AppState:
    def __init__(self):
        self.controller = ProgressionController(
            OllamaCourseServices(settings),
            ProgressTracker(passing_score=settings.course.passing_score),
        )

state = AppState()

def format_structured(title: str, block: StructuredContent) -> str:
    sections = "\n\n".join(f"### {section.subtitle}\n\n{section.text}" for section in block.sections)
    return f"## {title}: {block.title}\n\n{sections}"

def format_stage_content(content: StageContent, language: str) -> str:
    """Format stage content for display"""
    return "\n\n".join([
        format_structured(t("theory", language), content.theory),
        format_structured(t("case_study", language), content.case_study),
        format_structured(t("practical_exercise", language), content.practical_exercise),
        f"## {t('assignment', language)}\n\n{content.assignment}",
    ])

def format_outline(snapshot: CourseSnapshot) -> str:
    """Format the stage list with lock/completion markers"""
    lines = [f"# {t('course_outline', snapshot.language.value)}"]
    for view in snapshot.stages:
        marker = {StagePhase.COMPLETED: "✅", StagePhase.LOCKED: "🔒"}.get(view.phase, "▶️")
        active = " **(current)**" if view.stage.id == snapshot.active_stage_id else ""
        lines.append(f"- {marker} {view.stage.id}. **{view.stage.title}**{active}  \n  {view.stage.description}")
    progress = snapshot.progress
    lines.append(f"\nProgress: {progress.percent_complete:.0f}% ({len(progress.completed_stages)}/{progress.total_stages})")
    return "\n".join(lines)

def format_stage_detail(snapshot: CourseSnapshot) -> str:
    language = snapshot.language.value
    view = snapshot.active_stage
    if view is None:
        if snapshot.fully_completed:
            return t("congrats", language)
        return snapshot.curriculum_error or ""

    stage = view.stage
    parts = [f"# {stage.id}. {stage.title}", stage.description]
    if view.error:
        parts.append(f"**Error:** {view.error}")
    if stage.content is None:
        if view.phase == StagePhase.CONTENT_LOADING:
            parts.append(t("loading_content", language))
        return "\n\n".join(parts)

    parts.append(format_stage_content(stage.content, language))
    if stage.is_completed:
        parts.append(f"## {t('your_submission', language)}\n\n{stage.submission}")
        parts.append(f"## {t('ai_feedback', language)}\n\n**{t('score', language)}: {stage.score:g} / 100**\n\n{stage.feedback}")
    return "\n\n".join(parts)

def stage_choices(snapshot: Optional[CourseSnapshot]) -> List[Tuple[str, int]]:
    if snapshot is None:
        return []
    return [
        (f"{view.stage.id}. {view.stage.title}", view.stage.id)
        for view in snapshot.stages
        if view.phase != StagePhase.LOCKED
    ]

def render(status: str) -> Tuple[Any, ...]:
    """Build every output component from a fresh snapshot"""
    snapshot = state.controller.snapshot()
    if snapshot is None:
        return status, t("no_course", Language.EN.value), gr.update(choices=[], value=None), "", "", gr.update(visible=False)

    return (
        status,
        format_outline(snapshot),
        gr.update(choices=stage_choices(snapshot), value=snapshot.active_stage_id),
        format_stage_detail(snapshot),
        snapshot.final_artifact or "",
        # Retry re-bootstraps, so it is only offered after a failed curriculum
        gr.update(visible=snapshot.curriculum_error is not None),
    )

async def on_start(idea: str, language: str) -> Tuple[Any, ...]:
    try:
        await state.controller.start_course(idea, Language(language))
        return render("Course ready")
    except CourseError as e:
        logger.error(f"Error starting course: {str(e)}")
        return render(f"Error: {str(e)}")

async def on_retry() -> Tuple[Any, ...]:
    try:
        await state.controller.bootstrap_curriculum()
        return render("Course ready")
    except CourseError as e:
        logger.error(f"Error retrying curriculum: {str(e)}")
        return render(f"Error: {str(e)}")

async def on_language_change(language: str) -> Tuple[Any, ...]:
    try:
        await state.controller.change_language(Language(language))
        return render(f"Language: {language}")
    except CourseError as e:
        logger.error(f"Error changing language: {str(e)}")
        return render(f"Error: {str(e)}")

async def on_select(stage_id: Optional[int]) -> Tuple[Any, ...]:
    if stage_id is None or state.controller.session is None:
        return render("")
    try:
        await state.controller.select_stage(int(stage_id))
        return render(f"Stage {stage_id}")
    except CourseError as e:
        logger.error(f"Error selecting stage: {str(e)}")
        return render(f"Error: {str(e)}")

async def on_submit(submission: str) -> Tuple[Any, ...]:
    session = state.controller.session
    if session is None or session.active_stage_id is None:
        return render("No active stage") + (submission,)
    stage_id = session.active_stage_id
    try:
        stage = await state.controller.submit_assignment(stage_id, submission)
        status = f"Stage {stage_id} graded: {stage.score:g} / 100" if stage else ""
        return render(status) + ("",)
    except CourseError as e:
        logger.error(f"Error in submit_assignment: {str(e)}")
        return render(f"Error: {str(e)}") + (submission,)

async def on_generate_plan() -> Tuple[Any, ...]:
    try:
        await state.controller.generate_final_artifact()
        path = state.controller.export_final_artifact()
        return render("Business plan generated") + (path,)
    except CourseError as e:
        logger.error(f"Error generating business plan: {str(e)}")
        return render(f"Error: {str(e)}") + (None,)

def create_interface():
    """Create the Gradio interface"""
    with gr.Blocks(title="Startup School") as app:
        gr.Markdown("""
        # 🚀 Startup School
        A startup roadmap tailored to your project, from idea to business plan.
        """)

        with gr.Row():
            idea_input = gr.Textbox(
                label="What is your startup idea?",
                placeholder="e.g., An AI-powered tool that automatically translates and dubs videos into any language.",
                lines=3,
            )
            with gr.Column():
                language_input = gr.Dropdown(choices=LANGUAGE_CHOICES, value=Language.EN.value, label="Language")
                start_btn = gr.Button("Create My Course", variant="primary")
                retry_btn = gr.Button("Retry", visible=False)

        status_output = gr.Textbox(label="Status", interactive=False)

        with gr.Row():
            with gr.Column(scale=1):
                outline_output = gr.Markdown()
                stage_selector = gr.Dropdown(label="Stage", choices=[], interactive=True)
            with gr.Column(scale=3):
                content_output = gr.Markdown()
                submission_input = gr.Textbox(label="Your submission", lines=8)
                submit_btn = gr.Button("Submit for Grading")

        plan_btn = gr.Button("Generate My Business Plan", variant="primary")
        plan_output = gr.Markdown()
        plan_file = gr.File(label="Download Plan (.md)")

        outputs = [status_output, outline_output, stage_selector, content_output, plan_output, retry_btn]

        start_btn.click(fn=on_start, inputs=[idea_input, language_input], outputs=outputs)
        retry_btn.click(fn=on_retry, inputs=[], outputs=outputs)
        language_input.input(fn=on_language_change, inputs=[language_input], outputs=outputs)
        stage_selector.input(fn=on_select, inputs=[stage_selector], outputs=outputs)
        submit_btn.click(fn=on_submit, inputs=[submission_input], outputs=outputs + [submission_input])
        plan_btn.click(fn=on_generate_plan, inputs=[], outputs=outputs + [plan_file])

    return app

if __name__ == "__main__":
    app = create_interface()
    app.queue()
    app.launch(show_error=True)

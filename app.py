import asyncio
import logging
import time

import streamlit as st

from cgpa_calculator.backend_logic import (
    EditSession,
    RecalculateScheduler,
    calculate_cgpa_from_csv,
)
from cgpa_calculator.config import (
    COURSES_CSV_FILENAME,
    LOG_FORMAT,
    LOG_LEVEL,
    PAGE_ICON,
    PAGE_TITLE,
    TEMPLATE_CSV,
    TEMPLATE_CSV_FILENAME,
    TEMPLATE_XLSX_FILENAME,
    UPLOAD_DELAY,
    UPLOAD_TYPES,
)
from cgpa_calculator.errors import CGPAError, InvalidDataError
from cgpa_calculator.grades import to_letter_grade
from cgpa_calculator.io_csv import read_upload, template_excel_bytes

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

# ------------------------
# Streamlit UI
# ------------------------

st.set_page_config(
    page_title=PAGE_TITLE,
    page_icon=PAGE_ICON,
    layout="wide",
)

st.title("🎓 CGPA Calculator")
st.write(
    "Upload a CSV or Excel file with Course, Grade and Credits columns to get your "
    "cumulative GPA on the 4.0 scale. Repeated courses count once, with the best grade."
)


async def _recalculate(session: EditSession):
    return await RecalculateScheduler(session).request()


def _widget_key(field: str, idx: int) -> str:
    # new generation after rows shift so widgets re-read their entries
    return f"{field}_{st.session_state['table_gen']}_{idx}"


if "table_gen" not in st.session_state:
    st.session_state["table_gen"] = 0


# ------------------------
# Upload
# ------------------------

st.subheader("1. Upload your course data")

tpl1, tpl2, _ = st.columns([1, 1, 4])
with tpl1:
    st.download_button(
        "Download example CSV",
        data=TEMPLATE_CSV,
        file_name=TEMPLATE_CSV_FILENAME,
        mime="text/csv",
    )
with tpl2:
    st.download_button(
        "Download example Excel",
        data=template_excel_bytes(),
        file_name=TEMPLATE_XLSX_FILENAME,
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )

uploaded = st.file_uploader(
    "CSV or Excel file (Course, Grade, Credits)",
    type=UPLOAD_TYPES,
    key="course_file",
)

if uploaded is not None:
    upload_id = getattr(uploaded, "file_id", None) or f"{uploaded.name}:{uploaded.size}"
    # only process each upload once, not on every rerun
    if st.session_state.get("upload_id") != upload_id:
        st.session_state["upload_id"] = upload_id
        st.session_state.pop("upload_error", None)
        try:
            with st.spinner("Processing your file..."):
                result = calculate_cgpa_from_csv(read_upload(uploaded))
                time.sleep(UPLOAD_DELAY)
            st.session_state["session"] = EditSession.from_result(result)
            st.session_state["table_gen"] += 1
            logger.info(f"Loaded {uploaded.name}")
        except CGPAError as e:
            st.session_state["upload_error"] = str(e)
            st.session_state.pop("session", None)

if st.session_state.get("upload_error"):
    st.error(f"Error processing file: {st.session_state['upload_error']}")
elif uploaded is not None and "session" in st.session_state:
    st.success(f"Successfully processed {uploaded.name}")

if "session" not in st.session_state:
    if st.button("➕ Add Manual Entry", type="primary"):
        st.session_state["session"] = EditSession.manual()
        st.rerun()
    st.info("Upload a file or start a manual entry to get started.")
    st.stop()


# ------------------------
# Results
# ------------------------

session: EditSession = st.session_state["session"]

st.markdown("---")
st.subheader("Your results")

col1, col2, col3 = st.columns(3)
with col1:
    st.metric("Cumulative GPA", f"{session.cgpa:.2f}")
    st.caption(f"Letter grade: {to_letter_grade(session.cgpa)}")
with col2:
    st.metric("Total credits", f"{session.total_credits:g}")
with col3:
    st.metric("Courses", sum(1 for _ in session.visible_courses()))


# ------------------------
# Course breakdown
# ------------------------

st.subheader("2. Course breakdown")

b1, b2, _ = st.columns([1, 1, 4])
with b1:
    recalc_clicked = st.button("🔄 Recalculate CGPA", type="primary")
with b2:
    add_clicked = st.button("➕ Add Course")

with st.form("bulk_cgpa_form", clear_on_submit=True):
    st.markdown("**Add bulk CGPA entry**")
    f1, f2, f3 = st.columns([2, 2, 1])
    with f1:
        bulk_credits = st.text_input("Total credits", placeholder="e.g. 60")
    with f2:
        bulk_cgpa = st.text_input("with CGPA", placeholder="e.g. 3.45")
    with f3:
        bulk_submitted = st.form_submit_button("Add Bulk CGPA")

if bulk_submitted:
    try:
        session.add_bulk_entry(bulk_credits, bulk_cgpa)
        st.rerun()
    except InvalidDataError as e:
        st.error(str(e))

header = st.columns([4, 2, 2, 2, 2, 1])
for col, label in zip(header, ["Course", "Grade", "", "Credits", "Points", ""]):
    col.markdown(f"**{label}**")

exclude_idx = None
for idx, entry in session.visible_courses():
    c_name, c_grade, c_err, c_credits, c_points, c_x = st.columns([4, 2, 2, 2, 2, 1])

    with c_name:
        name = st.text_input("Course", value=entry.name, key=_widget_key("name", idx),
                             placeholder="Course Name", label_visibility="collapsed")
    with c_grade:
        grade = st.text_input("Grade", value=entry.grade, key=_widget_key("grade", idx),
                              placeholder="A, A-, B", label_visibility="collapsed")
    with c_err:
        if idx in session.errors:
            st.markdown(f":red[{session.errors[idx]}]")
    with c_credits:
        current_credits = entry.credits if isinstance(entry.credits, (int, float)) else 0.0
        credits = st.number_input("Credits", value=float(current_credits), min_value=0.0,
                                  step=0.5, key=_widget_key("credits", idx),
                                  label_visibility="collapsed")
    with c_points:
        st.write(f"{entry.grade_point * float(current_credits):.1f}")
    with c_x:
        if st.button("✖", key=_widget_key("exclude", idx), help="Exclude this course"):
            exclude_idx = idx

    if name != entry.name:
        session.edit(idx, name=name)
    if grade != entry.grade:
        session.edit(idx, grade=grade)
    if credits != current_credits:
        session.edit(idx, credits=credits)

if exclude_idx is not None:
    session.exclude(exclude_idx)
    st.rerun()

if add_clicked:
    session.add_course()
    st.session_state["table_gen"] += 1
    st.rerun()

if recalc_clicked:
    with st.spinner("Recalculating..."):
        errors = asyncio.run(_recalculate(session))
    if errors:
        st.session_state["recalc_warning"] = (
            f"{len(errors)} course(s) need fixing before the CGPA can be updated."
        )
    else:
        st.session_state.pop("recalc_warning", None)
    st.rerun()

if st.session_state.get("recalc_warning") and session.errors:
    st.warning(st.session_state["recalc_warning"])

st.download_button(
    "Download course list (CSV)",
    data=session.courses_frame().to_csv(index=False),
    file_name=COURSES_CSV_FILENAME,
    mime="text/csv",
)


st.header("FAQ")

st.subheader("Which grades are accepted?")
st.write(
    "Letter grades A+ to F (A+ and A are both 4.0) or a numeric grade point between 0 and 4.0."
)

st.subheader("What happens to repeated courses?")
st.write(
    "When the same course name appears more than once, only the attempt with the highest "
    "grade point counts. Names must match exactly."
)

st.subheader("What data do you collect or store?")
st.write(
    "Nothing is stored. Uploaded files and manual entries are processed in your session "
    "only and are cleared when you refresh or close the page."
)

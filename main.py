from __future__ import annotations

import logging

import altair as alt
import pandas as pd
import streamlit as st

from smoking_risk.app_services import DiagnosisRequestError, process_diagnosis
from smoking_risk.certainty import engine
from smoking_risk.certainty.risk import risk_curve_frame
from smoking_risk.config import load_settings
from smoking_risk.knowledge_base import load_knowledge_base


def _label_with_unit(label, unit):
    return f"{label} ({unit})" if unit else label


def _coerce_slider_value(min_value, max_value):
    if isinstance(min_value, float) or isinstance(max_value, float):
        mid = (float(min_value) + float(max_value)) / 2.0
        return round(mid, 1)
    return int((min_value + max_value) / 2)


def _to_widget_key(name: str) -> str:
    return f"input_{name}"


def _render_input(item):
    field_type = item.get("type")
    label = _label_with_unit(item.get("label", ""), item.get("unit", ""))
    help_text = item.get("help", "")
    widget_key = _to_widget_key(item.get("name", "field"))

    if field_type == "slider":
        min_value = item.get("min", 0)
        max_value = item.get("max", 100)
        value = item.get("default", _coerce_slider_value(min_value, max_value))
        if widget_key not in st.session_state:
            st.session_state[widget_key] = value
        return st.slider(
            label,
            min_value=min_value,
            max_value=max_value,
            step=item.get("step", 1),
            key=widget_key,
            help=help_text,
        )

    if field_type == "selectbox":
        options = item.get("options", [])
        if widget_key not in st.session_state:
            st.session_state[widget_key] = options[0] if options else None
        return st.selectbox(label, options, key=widget_key, help=help_text)

    st.warning(f"Unsupported input type: {field_type}")
    return None


def _build_payload(name, user_inputs):
    profile_fields = ("age", "smoking_years", "cigarettes_per_day")
    selected = []
    for key, value in user_inputs.items():
        if key in profile_fields:
            continue
        certainty = engine.CERTAINTY_LEVELS.get(value, 0.0)
        if certainty > 0:
            selected.append({"symptom_id": key, "certainty": certainty})
    user_data = {key: user_inputs.get(key) for key in profile_fields}
    user_data["name"] = name
    return {"user_data": user_data, "selected_symptoms": selected}


def _result_frame(results):
    rows = [
        {
            "Disease": item["disease"]["name"],
            "Severity": item["disease"]["severity"].title(),
            "CF (symptoms)": round(item["aggregate_cf"], 3),
            "CF (adjusted)": round(item["adjusted_cf"], 3),
            "Probability (%)": item["percentage"],
            "Confidence": item["confidence"].title(),
        }
        for item in results
    ]
    return pd.DataFrame(rows)


def _render_disease_card(title, result):
    disease = result["disease"]
    st.markdown(f"#### {title}: {disease['name']} ({result['percentage']:.1f}%)")
    st.caption(disease.get("description", ""))
    prevention_col, treatment_col = st.columns(2)
    with prevention_col:
        st.markdown("**Prevention**")
        for item in disease.get("prevention", []):
            st.write(f"- {item}")
    with treatment_col:
        st.markdown("**Treatment**")
        for item in disease.get("treatment", []):
            st.write(f"- {item}")
    statistics = disease.get("statistics", {})
    if statistics:
        st.dataframe(
            pd.DataFrame([{"Statistic": key, "Value": value} for key, value in statistics.items()]),
            use_container_width=True,
        )


def _rule_trace_frame(results, kb):
    rows = []
    for item in results:
        for evidence in item["evidences"]:
            symptom = kb.symptom(evidence["symptom_id"])
            rows.append(
                {
                    "Rule": evidence["rule_id"],
                    "IF": symptom.name if symptom else evidence["symptom_id"],
                    "THEN": item["disease"]["name"],
                    "CF(rule)": round(evidence["rule_cf"], 3),
                    "Certainty": evidence["certainty"],
                    "CF(evidence)": round(evidence["cf"], 3),
                }
            )
    df = pd.DataFrame(rows)
    if df.empty:
        return df
    return df.sort_values(["CF(evidence)", "Rule"], ascending=[False, True]).reset_index(drop=True)


def _render_result_block(response, kb):
    st.markdown("### 📊 Diagnostic Results")
    summary = response["summary"]
    primary = summary["primary_diagnosis"]

    m1, m2, m3 = st.columns(3)
    with m1:
        value = f"{primary['percentage']:.1f}%" if primary else "0.0%"
        st.metric(label="Certainty", value=value, delta=f"{summary['risk_level'].title()} Risk")
    with m2:
        st.metric(label="Primary Diagnosis", value=primary["disease"]["name"] if primary else "None")
    with m3:
        st.metric(
            label="Risk Factor",
            value=f"{response['risk_factor'] * 100:.1f}%",
            delta=summary["risk_factor_level"].title(),
            delta_color="inverse",
        )

    with st.expander("📝 View Recommendation", expanded=True):
        st.info(f"**Recommendation:** {summary['recommendation']}")
        st.caption(summary["risk_description"])

    if not primary:
        st.warning("No disease in the knowledge base matches the selected symptoms.")
        return

    _render_disease_card("Primary diagnosis", primary)

    score_df = _result_frame(response["results"])
    st.markdown("#### Condition Distribution")
    dist_chart = (
        alt.Chart(score_df)
        .mark_bar(cornerRadiusEnd=4)
        .encode(
            x=alt.X("Probability (%):Q", title="Probability (%)", scale=alt.Scale(domain=[0, 100])),
            y=alt.Y("Disease:N", sort="-x", title="Disease"),
            color=alt.Color("Severity:N", title="Severity"),
            tooltip=[
                alt.Tooltip("Disease:N", title="Disease"),
                alt.Tooltip("Probability (%):Q", title="Probability", format=".1f"),
                alt.Tooltip("Confidence:N", title="Confidence"),
            ],
        )
    )
    dist_text = (
        alt.Chart(score_df)
        .mark_text(align="left", dx=4, fontSize=12)
        .encode(
            x=alt.X("Probability (%):Q"),
            y=alt.Y("Disease:N", sort="-x"),
            text=alt.Text("Probability (%):Q", format=".1f"),
        )
    )
    st.altair_chart(dist_chart + dist_text, use_container_width=True)
    st.dataframe(score_df, use_container_width=True)

    if summary["alternative_diagnoses"]:
        with st.expander("View alternative diagnoses"):
            for item in summary["alternative_diagnoses"]:
                st.write(f"- **{item['disease']['name']}**: {item['percentage']:.1f}% ({item['confidence']})")

    trace_df = _rule_trace_frame(response["results"], kb)
    if not trace_df.empty:
        st.markdown("#### Rule Trace (Most Activated)")
        st.dataframe(trace_df, use_container_width=True)


def _risk_curve_chart(kind, settings, value=None):
    df = risk_curve_frame(kind, settings.risk)
    x_name = df.columns[0]
    base = (
        alt.Chart(df)
        .mark_line()
        .encode(
            x=alt.X(f"{x_name}:Q", title=x_name),
            y=alt.Y("Sub-score:Q", title="Sub-score", scale=alt.Scale(domain=[0, 1])),
        )
    )
    if value is None:
        return base
    marker_df = pd.DataFrame({"x": [value], "label": [f"{value:.1f}"]})
    marker = (
        alt.Chart(marker_df)
        .mark_rule(color="#e63946", strokeDash=[4, 4], strokeWidth=2)
        .encode(x="x:Q")
    )
    return base + marker


def _render_explanation(settings, user_inputs):
    st.subheader("How the Certainty Factor Method Works")
    st.markdown("#### 1) Rule certainty")
    st.write(
        "Every expert rule IF symptom THEN disease carries a measure of belief (MB), a measure of "
        "disbelief (MD) and a weight. Its certainty is CF = (MB - MD) x weight."
    )
    st.markdown("#### 2) User certainty")
    st.write("Each selected symptom is scaled by how sure you are: CF(evidence) = CF(rule) x certainty.")
    st.dataframe(
        pd.DataFrame([{"Answer": key, "Certainty": value} for key, value in engine.CERTAINTY_LEVELS.items()]),
        use_container_width=True,
    )
    st.markdown("#### 3) Combining evidence")
    st.latex(r"CF_{combined} = CF_1 + CF_2 \times (1 - CF_1)")
    st.write("Evidences for the same disease are combined one by one in rule order.")

    st.markdown("#### 4) Behavioural risk factor")
    st.write(
        "Pack-years and age feed two S-shaped curves; their weighted sum is blended into every "
        "diagnosis as one more positive evidence."
    )
    smoking_years = user_inputs.get("smoking_years") or 0
    cigarettes = user_inputs.get("cigarettes_per_day") or 0
    pack_years = smoking_years * cigarettes / float(settings.risk.cigarettes_per_pack)
    st.altair_chart(_risk_curve_chart("intensity", settings, pack_years), use_container_width=True)
    st.altair_chart(_risk_curve_chart("age", settings, user_inputs.get("age")), use_container_width=True)


def _render_knowledge_base(kb):
    st.subheader("Knowledge Base")
    frames = kb.to_frames()
    symptom_tab, disease_tab, rule_tab = st.tabs(["Symptoms", "Diseases", "Rules"])
    with symptom_tab:
        st.dataframe(frames["symptoms"], use_container_width=True)
    with disease_tab:
        st.dataframe(frames["diseases"].drop(columns=["statistics"]), use_container_width=True)
    with rule_tab:
        rules = frames["rules"].copy()
        rules["cf"] = ((rules["mb"] - rules["md"]) * rules["weight"]).round(3)
        st.dataframe(rules, use_container_width=True)


settings = load_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
kb = load_knowledge_base(settings.data_dir)

st.set_page_config(page_title="Smoking Risk Self-Assessment", layout="wide")

st.markdown(
    "<h1 style='text-align: center;'>Smoking-Related Disease Self-Assessment</h1>",
    unsafe_allow_html=True,
)

with st.sidebar:
    st.title("CF Diagnosis")
    st.caption(f"{len(kb.symptoms)} symptoms • {len(kb.diseases)} diseases • {len(kb.rules)} rules")
    st.divider()
    st.caption("This self-assessment does not replace a medical examination.")

input_schema = engine.get_inputs(kb)
profile_schema = [item for item in input_schema if item["type"] == "slider"]
symptom_schema = [item for item in input_schema if item["type"] == "selectbox"]

diagnosis_tab, explanation_tab, knowledge_tab = st.tabs(["Diagnosis", "Explanation", "Knowledge Base"])

with diagnosis_tab:
    st.subheader("Your Profile")
    name = st.text_input("Name", key="user_name")
    user_inputs = {}
    profile_cols = st.columns(len(profile_schema))
    for col, item in zip(profile_cols, profile_schema):
        with col:
            user_inputs[item["name"]] = _render_input(item)

    st.markdown("### Symptoms")
    st.caption("Leave a symptom at 'No' if you do not have it; otherwise say how sure you are.")
    categories = []
    for item in symptom_schema:
        if item["category"] not in categories:
            categories.append(item["category"])
    for category in categories:
        with st.expander(category.title(), expanded=False):
            col1, col2 = st.columns(2)
            items = [item for item in symptom_schema if item["category"] == category]
            for idx, item in enumerate(items):
                with col1 if idx % 2 == 0 else col2:
                    user_inputs[item["name"]] = _render_input(item)

    st.markdown("---")
    if st.button("🚀 Run Diagnosis", key="diagnose_btn", type="primary", use_container_width=True):
        payload = _build_payload(name, user_inputs)
        try:
            response = process_diagnosis(payload, knowledge_base=kb, settings=settings)
        except DiagnosisRequestError as exc:
            for error in exc.errors:
                st.error(f"{error['field']}: {error['message']}")
            st.session_state.pop("last_response", None)
        else:
            st.session_state["last_response"] = response
            st.session_state["last_user_inputs"] = user_inputs

    if "last_response" in st.session_state:
        _render_result_block(st.session_state["last_response"], kb)

with explanation_tab:
    _render_explanation(settings, st.session_state.get("last_user_inputs", user_inputs))

with knowledge_tab:
    _render_knowledge_base(kb)

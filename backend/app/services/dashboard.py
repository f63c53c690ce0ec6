from __future__ import annotations

from string import Template

_PAGE = Template(
    """<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>Live Recruiting KPI Dashboard</title>
  <style>
    body { font-family: -apple-system, Segoe UI, Roboto, Helvetica, Arial, sans-serif; margin: 0; background: #f6f7fb; color: #111; }
    .container { max-width: 1100px; margin: 32px auto; padding: 0 16px; }
    .header { display: flex; justify-content: space-between; align-items: baseline; }
    .sub { color: #555; font-size: 13px; }
    .grid { display: grid; grid-template-columns: repeat(3, 1fr); gap: 12px; margin: 16px 0 20px; }
    .card { background: white; border-radius: 14px; padding: 14px 16px; box-shadow: 0 1px 8px rgba(0,0,0,0.06); }
    .kpi { font-size: 22px; font-weight: 700; margin-top: 6px; }
    .label { font-size: 12px; color: #666; text-transform: uppercase; }
    table { width: 100%; border-collapse: collapse; background: white; margin-bottom: 18px; }
    th, td { padding: 10px 12px; border-bottom: 1px solid #eee; text-align: left; font-size: 13px; }
    .right { text-align: right; }
    @media (max-width: 900px) { .grid { grid-template-columns: 1fr; } }
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>Live Recruiting KPI Dashboard</h1>
      <div class="sub">Last updated: <span id="updatedAt">-</span></div>
    </div>
    <div class="grid">
      <div class="card"><div class="label">Hires with touchpoints</div><div class="kpi" id="hireCount">-</div></div>
      <div class="card"><div class="label">Avg touchpoints to hire</div><div class="kpi" id="avgTouches">-</div></div>
      <div class="card"><div class="label">Median touchpoints to hire</div><div class="kpi" id="medianTouches">-</div></div>
    </div>
    <h2>Event to interview conversion</h2>
    <table>
      <thead><tr><th>Event</th><th class="right">Leads</th><th class="right">Interviews+</th><th class="right">Interview rate</th></tr></thead>
      <tbody id="eventRows"></tbody>
    </table>
    <h2>Channel performance</h2>
    <table>
      <thead><tr><th>Source</th><th class="right">Leads</th><th class="right">Interviews+</th><th class="right">Hires</th><th class="right">Interview rate</th><th class="right">Hire rate</th><th class="right">Hire from interview</th></tr></thead>
      <tbody id="channelRows"></tbody>
    </table>
    <div class="sub">Live updates over /events, with a full refresh every $refresh_seconds seconds.</div>
  </div>
<script>
  function pct(x) { return (x === null || x === undefined) ? "-" : (x * 100).toFixed(1) + "%"; }
  function dash(x) { return x === null || x === undefined ? "-" : x; }
  function cell(text, right) {
    const td = document.createElement("td");
    if (right) td.className = "right";
    td.textContent = text;
    return td;
  }
  function fill(tbodyId, rows, columns, emptyText) {
    const tbody = document.getElementById(tbodyId);
    tbody.innerHTML = "";
    if (rows.length === 0) {
      const tr = document.createElement("tr");
      const td = cell(emptyText, false);
      td.colSpan = columns.length;
      tr.appendChild(td);
      tbody.appendChild(tr);
      return;
    }
    for (const row of rows) {
      const tr = document.createElement("tr");
      columns.forEach((render, index) => tr.appendChild(cell(render(row), index > 0)));
      tbody.appendChild(tr);
    }
  }
  async function load() {
    const res = await fetch("/metrics");
    const data = await res.json();
    const touches = data.touchpoints_to_hire;
    document.getElementById("updatedAt").textContent = new Date(data.updated_at).toLocaleString();
    document.getElementById("hireCount").textContent = touches.hired_count;
    document.getElementById("avgTouches").textContent = dash(touches.avg_touchpoints);
    document.getElementById("medianTouches").textContent = dash(touches.median_touchpoints);
    fill("eventRows", data.event_conversion, [
      r => r.event_name, r => r.leads, r => r.interviews, r => pct(r.interview_rate)
    ], "No event rows yet.");
    fill("channelRows", data.channel_performance, [
      r => r.source, r => r.leads, r => r.interviews, r => r.hires,
      r => pct(r.interview_rate), r => pct(r.hire_rate), r => pct(r.hire_from_interview_rate)
    ], "No channel rows yet.");
  }
  load();
  const stream = new EventSource("/events");
  stream.onmessage = () => load();
  setInterval(load, $refresh_ms);
</script>
</body>
</html>
"""
)


def render_dashboard(refresh_seconds: int) -> str:
    return _PAGE.substitute(refresh_seconds=refresh_seconds, refresh_ms=refresh_seconds * 1000)

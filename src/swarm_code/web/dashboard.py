"""Dashboard HTML with inline CSS and vanilla JS."""


def get_dashboard_html() -> str:
    return """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Swarm Code</title>
<style>
  :root {
    --bg: #f6f8fa; --card: #ffffff; --line: #d0d7de;
    --ink: #1f2328; --muted: #59636e;
    --pending: #9a6700; --running: #0969da; --done: #1a7f37; --failed: #cf222e;
  }
  html, body { margin: 0; }
  body { font: 14px/1.45 system-ui, sans-serif; background: var(--bg); color: var(--ink); }
  .container { max-width: 1040px; margin: 0 auto; padding: 20px; }

  header { display: flex; align-items: baseline; gap: 12px; margin-bottom: 20px; }
  header h1 { margin: 0; font-size: 22px; }
  header button { margin-left: auto; background: var(--card); border: 1px solid var(--line);
                  border-radius: 6px; padding: 3px 12px; cursor: pointer; color: var(--muted); }

  .summary { display: grid; grid-template-columns: repeat(4, auto) 1fr auto; gap: 14px;
             align-items: center; margin-bottom: 20px; }
  .stat .dot { display: inline-block; width: 9px; height: 9px; border-radius: 2px; margin-right: 4px; }
  .dot.pending, .badge.pending { background: var(--pending); }
  .dot.running, .badge.running { background: var(--running); }
  .dot.done, .badge.done { background: var(--done); }
  .dot.failed, .badge.failed { background: var(--failed); }
  .progress-bar { height: 6px; background: var(--line); border-radius: 3px; overflow: hidden; }
  .progress-bar .fill { height: 100%; background: var(--done); }
  .meta { color: var(--muted); margin-bottom: 12px; }
  code { font: 12px ui-monospace, monospace; background: #eff2f5; padding: 1px 5px; border-radius: 4px; }

  .wave { margin-bottom: 18px; }
  .wave h2 { font-size: 13px; letter-spacing: 0.04em; color: var(--muted); margin: 0 0 6px; }
  .wp-card { background: var(--card); border: 1px solid var(--line); border-left-width: 3px;
             border-radius: 6px; padding: 10px 14px; margin-bottom: 6px; }
  .wp-header { display: flex; align-items: center; gap: 8px; }
  .badge { color: #fff; border-radius: 4px; padding: 0 7px; font-size: 11px; font-weight: 600; }
  .wp-name { font-weight: 600; }
  .wp-id { color: var(--muted); font-family: ui-monospace, monospace; font-size: 12px; }
  .wp-details { margin-top: 4px; color: var(--muted); font-size: 13px; }
  .wp-error { color: var(--failed); }
  .empty { padding: 40px; text-align: center; color: var(--muted); }
</style>
</head>
<body>
<div class="container">
  <header>
    <h1>Swarm Code</h1>
    <button onclick="loadDashboard()">Refresh</button>
  </header>
  <div id="content"><div class="empty"><h3>Loading...</h3></div></div>
</div>

<script>
async function fetchJSON(path) {
  const res = await fetch(path);
  if (!res.ok) return null;
  return res.json();
}

async function loadDashboard() {
  const content = document.getElementById('content');
  const [state, summary, waves] = await Promise.all([
    fetchJSON('/api/state'),
    fetchJSON('/api/summary'),
    fetchJSON('/api/waves'),
  ]);

  if (!state) {
    content.innerHTML = '<div class="empty"><h3>No run yet</h3><p>Start one with <code>swarm-code run</code></p></div>';
    return;
  }

  const byId = {};
  for (const wp of state.workPackages) byId[wp.id] = wp;

  const c = summary.counts;
  let html = `<div class="meta">Target <code>${esc(summary.target_branch)}</code>
    &middot; Agent <code>${esc(summary.agent)}</code>
    &middot; ${summary.completed_at ? 'Completed ' + esc(summary.completed_at) : 'In progress'}</div>`;
  html += `<div class="summary">
    <span class="stat"><span class="dot pending"></span> ${c.pending} pending</span>
    <span class="stat"><span class="dot running"></span> ${c.running} running</span>
    <span class="stat"><span class="dot done"></span> ${c.done} done</span>
    <span class="stat"><span class="dot failed"></span> ${c.failed} failed</span>
    <div class="progress-bar"><div class="fill" style="width:${summary.progress_pct}%"></div></div>
    <span>${summary.progress_pct}%</span>
  </div>`;

  for (const wave of waves) {
    html += `<div class="wave"><h2>Wave ${wave.wave}</h2>`;
    for (const item of wave.work_packages) html += renderWP(byId[item.id]);
    html += '</div>';
  }
  content.innerHTML = html;
}

function renderWP(wp) {
  let details = `<div>Branch: <code>${esc(wp.branch)}</code> &middot; attempts: ${wp.attempts}</div>`;
  if (wp.dependencies.length > 0) {
    details += `<div>Depends on: ${wp.dependencies.map(d => `<code>${esc(d)}</code>`).join(', ')}</div>`;
  }
  if (wp.error) details += `<div class="wp-error">${esc(wp.error)}</div>`;
  return `<div class="wp-card">
    <div class="wp-header">
      <span class="badge ${esc(wp.status)}">${esc(wp.status)}</span>
      <span class="wp-name">${esc(wp.name)}</span>
      <span class="wp-id">${esc(wp.id)}</span>
    </div>
    <div class="wp-details">${details}</div>
  </div>`;
}

function esc(s) {
  if (s === null || s === undefined) return '';
  const d = document.createElement('div');
  d.textContent = String(s);
  return d.innerHTML;
}

loadDashboard();
setInterval(loadDashboard, 5000);
</script>
</body>
</html>"""

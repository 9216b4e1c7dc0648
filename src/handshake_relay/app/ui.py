from __future__ import annotations

from html import escape


def render_admin_page(*, app_name: str) -> str:
    title = escape(app_name)
    return (
        """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>__TITLE__ Admin</title>
  <style>
    :root {
      --bg: #f3efe6;
      --panel: #fffaf0;
      --ink: #112433;
      --muted: #5c6b74;
      --accent: #0f8b8d;
      --line: #d7d1c3;
      --warn: #b00020;
    }
    * { box-sizing: border-box; }
    body {
      margin: 0;
      font-family: system-ui, sans-serif;
      color: var(--ink);
      background: var(--bg);
    }
    .wrap { max-width: 1000px; margin: 24px auto; padding: 0 16px; display: grid; gap: 16px; }
    .card {
      background: var(--panel);
      border: 1px solid var(--line);
      border-radius: 12px;
      padding: 16px;
    }
    h1 { margin: 0 0 4px; }
    p { margin: 0; color: var(--muted); }
    .row { display: flex; flex-wrap: wrap; gap: 8px; margin-top: 12px; }
    input { flex: 1; min-width: 240px; padding: 8px; border: 1px solid var(--line); border-radius: 8px; }
    button {
      border: 0;
      border-radius: 8px;
      padding: 8px 14px;
      background: var(--accent);
      color: white;
      cursor: pointer;
    }
    #statusText.error { color: var(--warn); }
    pre { margin: 0; white-space: pre-wrap; word-break: break-word; font-size: 13px; }
    table { width: 100%; border-collapse: collapse; font-size: 14px; }
    th, td { text-align: left; padding: 6px; border-bottom: 1px solid var(--line); }
  </style>
</head>
<body>
  <main class="wrap">
    <section class="card">
      <h1>__TITLE__</h1>
      <p>Start a handshake, watch both halves arrive, then run the final check.</p>
      <div class="row">
        <input id="messageInput" placeholder="Message (optional)">
        <button id="sendBtn">Send Request</button>
      </div>
      <div class="row">
        <input id="requestIdInput" placeholder="Request ID">
        <button id="fetchBtn">Fetch</button>
        <button id="checkBtn">Check</button>
        <button id="refreshBtn">Refresh List</button>
      </div>
      <p id="statusText">Ready.</p>
    </section>
    <section class="card">
      <table>
        <thead><tr><th>Request ID</th><th>Stage</th><th>Created</th></tr></thead>
        <tbody id="records"></tbody>
      </table>
    </section>
    <section class="card"><pre id="output">No response yet.</pre></section>
  </main>
  <script>
    const requestIdInput = document.getElementById("requestIdInput");
    const statusText = document.getElementById("statusText");
    const output = document.getElementById("output");

    function setStatus(message, isError = false) {
      statusText.textContent = message;
      statusText.classList.toggle("error", isError);
    }

    async function call(url, method = "GET", body = undefined) {
      const response = await fetch(url, {
        method,
        headers: { "Content-Type": "application/json" },
        body: body === undefined ? undefined : JSON.stringify(body),
      });
      const data = await response.json();
      output.textContent = JSON.stringify(data, null, 2);
      if (!response.ok) {
        throw new Error(data.message || response.statusText);
      }
      return data;
    }

    function requireId() {
      const requestId = requestIdInput.value.trim();
      if (!requestId) {
        throw new Error("Request ID is required.");
      }
      return encodeURIComponent(requestId);
    }

    async function refresh() {
      const data = await call("/v1/secrets");
      const rows = Object.values(data.data).map((record) => {
        const tr = document.createElement("tr");
        for (const value of [record.request_id, record.stage, record.created_at]) {
          const td = document.createElement("td");
          td.textContent = value;
          tr.appendChild(td);
        }
        tr.addEventListener("click", () => { requestIdInput.value = record.request_id; });
        return tr;
      });
      document.getElementById("records").replaceChildren(...rows);
    }

    function handle(label, action) {
      return async () => {
        try {
          setStatus(`${label}...`);
          await action();
          setStatus(`${label} done.`);
        } catch (err) {
          setStatus(String(err.message || err), true);
        }
      };
    }

    document.getElementById("sendBtn").addEventListener("click", handle("Sending", async () => {
      const message = document.getElementById("messageInput").value.trim();
      const data = await call("/v1/send/request", "POST", message ? { message } : {});
      requestIdInput.value = data.request_id;
      await refresh();
    }));
    document.getElementById("fetchBtn").addEventListener("click", handle("Fetching", async () => {
      await call(`/v1/secrets/${requireId()}`);
    }));
    document.getElementById("checkBtn").addEventListener("click", handle("Checking", async () => {
      await call(`/v1/check/${requireId()}`, "POST");
    }));
    document.getElementById("refreshBtn").addEventListener("click", handle("Refreshing", refresh));
    refresh().catch((err) => setStatus(String(err.message || err), true));
  </script>
</body>
</html>
"""
    ).replace("__TITLE__", title)
